import logging

import httpx
import pytest
import requests

import api_logger
from api_logger import RecordingEmitter, create_logger, http_proxy
from api_logger.emitter import EventRecord


@pytest.fixture
def default_logger():
    engine = api_logger.get_default_logger()
    yield engine
    engine.shutdown()
    engine.clear_captures()
    engine.reset()
    engine.config.merge(api_logger.LoggerConfig().model_dump())


class TestInstallation:
    def test_init_is_idempotent(self, emitter):
        engine = create_logger(emitter=emitter, log_to_console=False)
        original_send = requests.Session.send
        original_async_send = httpx.AsyncClient.send
        try:
            engine.init()
            patched_send = requests.Session.send
            patched_async_send = httpx.AsyncClient.send
            assert patched_send is not original_send

            engine.init({"logResponseBody": False})
            assert requests.Session.send is patched_send
            assert httpx.AsyncClient.send is patched_async_send
            assert engine.config.log_response_body is False
        finally:
            engine.shutdown()

        assert requests.Session.send is original_send
        assert httpx.AsyncClient.send is original_async_send

    def test_second_logger_takes_over_without_rewrapping(self):
        first = create_logger(emitter=RecordingEmitter(), log_to_console=False)
        second = create_logger(emitter=RecordingEmitter(), log_to_console=False)
        try:
            first.init()
            patched_send = httpx.Client.send
            second.init()
            assert httpx.Client.send is patched_send
            assert http_proxy.installed_logger() is second
            assert second.installed and not first.installed

            assert first.shutdown() is False
            assert http_proxy.is_installed()
        finally:
            second.shutdown()
        assert not http_proxy.is_installed()

    def test_tracking_context_manager(self, emitter):
        engine = create_logger(emitter=emitter, log_to_console=False)
        with engine.tracking(enabled=True) as active:
            assert active is engine
            assert engine.installed
        assert not engine.installed


class TestPublicApi:
    def test_module_level_functions_use_default_logger(self, default_logger):
        api_logger.set_config(logToConsole=False)
        handle = api_logger.capture("post", "api.example.com/newsletter", lambda body, info: None)

        captures = api_logger.get_captures()
        assert [(c.id, c.method, c.pattern) for c in captures] == [
            (handle.id, "POST", "api.example.com/newsletter")
        ]
        assert api_logger.get_config()["logToConsole"] is False

        api_logger.disable()
        assert api_logger.get_config()["enabled"] is False
        api_logger.enable()
        assert api_logger.get_config()["enabled"] is True

        assert api_logger.clear_captures() == 1
        assert api_logger.get_captures() == []

    def test_reset_only_touches_counters(self, emitter):
        engine = create_logger(emitter=emitter, log_to_console=False)
        engine.capture("GET", "example.com", lambda body, info: None)
        engine.counter.increment("/a")
        engine.counter.increment("/b")

        engine.reset()

        assert engine.get_stats().total_events == 0
        assert engine.get_stats().events_by_endpoint == {}
        assert len(engine.get_captures()) == 1

    def test_history_bounded_by_max_logged_events(self, emitter):
        engine = create_logger(emitter=emitter, log_to_console=False, max_logged_events=2)
        for index in range(3):
            engine.history.append(
                EventRecord(
                    surface="test",
                    phase="complete",
                    method="GET",
                    url=f"https://example.com/{index}",
                    endpoint=f"/{index}",
                    started_at=0.0,
                )
            )
        assert [e.url for e in engine.get_events()] == [
            "https://example.com/1",
            "https://example.com/2",
        ]

        engine.set_config(maxLoggedEvents=1)
        assert [e.url for e in engine.get_events()] == ["https://example.com/2"]


class TestConsoleMessages:
    def test_lifecycle_messages(self, caplog):
        engine = create_logger()
        caplog.set_level(logging.INFO, logger="api_logger.console")

        handle = engine.capture("GET", "example.com/items", lambda body, info: None)
        handle.update(lambda body, info: None)
        handle.remove()
        engine.reset()

        messages = [r.getMessage() for r in caplog.records]
        assert "API Logger: capture registered: GET example.com/items" in messages
        assert "API Logger: capture updated: GET example.com/items" in messages
        assert "API Logger: capture removed: GET example.com/items" in messages
        assert "API Logger: statistics reset" in messages

    def test_console_toggle_silences_sink(self, caplog):
        engine = create_logger()
        caplog.set_level(logging.INFO, logger="api_logger.console")

        engine.disable_console_logging()
        caplog.clear()
        engine.capture("GET", "example.com", lambda body, info: None)
        engine.reset()
        assert caplog.records == []

        engine.enable_console_logging()
        assert caplog.records[-1].getMessage() == "API Logger: console logs enabled"

    def test_log_level_is_per_instance(self, caplog):
        caplog.set_level(logging.DEBUG, logger="api_logger.console")
        quiet = create_logger(logLevel="warn")
        chatty = create_logger(log_level="debug")

        quiet.reset()
        chatty.reset()

        assert [r.getMessage() for r in caplog.records] == ["API Logger: statistics reset"]
        assert quiet.get_config()["logLevel"] == "warn"

    def test_error_level_still_reports_callback_errors(self, caplog):
        caplog.set_level(logging.DEBUG, logger="api_logger.console")
        engine = create_logger(log_level="error")

        engine.reset()
        engine.report_error("Error in capture callback (requests)", ValueError("boom"))

        assert [r.levelno for r in caplog.records] == [logging.ERROR]
