"""The ApiLogger engine: registry, configuration, counters and sinks."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional

from . import http_proxy
from .config import LoggerConfig
from .console import ConsoleEmitter, announce
from .emitter import EventEmitter, EventRecord
from .registry import (
    CaptureCallback,
    CaptureHandle,
    CaptureInfo,
    CaptureRegistration,
    CaptureRegistry,
    UrlPattern,
)
from .stats import EndpointCounter, EventHistory, Stats

logger = logging.getLogger(__name__)


class ApiLogger:
    """Owns everything an intercepted call consults.

    The ``send`` wrappers are installed on :meth:`init`; until then captures
    can be registered and configuration changed, but no traffic is observed.
    """

    def __init__(
        self,
        config: Optional[LoggerConfig] = None,
        *,
        emitter: Optional[EventEmitter] = None,
    ):
        self.config = config or LoggerConfig()
        self.registry = CaptureRegistry()
        self.counter = EndpointCounter()
        self.history = EventHistory(self.config.max_logged_events)
        self.emitter: EventEmitter = emitter or ConsoleEmitter(self.config)

    # Lifecycle -------------------------------------------------------------

    def init(self, config: Optional[Mapping[str, Any]] = None, **options: Any) -> "ApiLogger":
        self._merge(config, **options)
        http_proxy.install(self)
        self.announce("initialized")
        return self

    def shutdown(self) -> bool:
        """Remove the ``send`` wrappers if this logger is the installed one."""

        return http_proxy.uninstall(self)

    @property
    def installed(self) -> bool:
        return http_proxy.installed_logger() is self

    @contextmanager
    def tracking(self, config: Optional[Mapping[str, Any]] = None, **options: Any) -> Iterator["ApiLogger"]:
        """Observe outbound calls inside the managed block."""

        self.init(config, **options)
        try:
            yield self
        finally:
            self.shutdown()

    # Configuration ---------------------------------------------------------

    def set_config(self, config: Optional[Mapping[str, Any]] = None, **options: Any) -> "ApiLogger":
        self._merge(config, **options)
        self.announce("configuration updated")
        return self

    def get_config(self) -> Dict[str, Any]:
        return self.config.snapshot()

    def enable(self) -> "ApiLogger":
        self.config.enabled = True
        self.announce("logger enabled")
        return self

    def disable(self) -> "ApiLogger":
        self.config.enabled = False
        self.announce("logger disabled")
        return self

    def enable_console_logging(self) -> "ApiLogger":
        self.config.log_to_console = True
        self.announce("console logs enabled")
        return self

    def disable_console_logging(self) -> "ApiLogger":
        self.announce("console logs disabled")
        self.config.log_to_console = False
        return self

    def _merge(self, config: Optional[Mapping[str, Any]], **options: Any) -> None:
        self.config.merge(config, **options)
        self.history.resize(self.config.max_logged_events)

    # Statistics ------------------------------------------------------------

    def get_stats(self) -> Stats:
        return self.counter.snapshot()

    def get_events(self) -> List[EventRecord]:
        """Most recent finished calls, at most ``max_logged_events`` of them."""

        return self.history.snapshot()

    def reset(self) -> "ApiLogger":
        self.counter.reset()
        self.announce("statistics reset")
        return self

    # Captures --------------------------------------------------------------

    def capture(
        self, method: str, url_pattern: UrlPattern, callback: CaptureCallback
    ) -> CaptureHandle:
        registration = self.registry.register(method, url_pattern, callback)
        self.announce(f"capture registered: {registration.method} {registration.describe()}")
        return CaptureHandle(
            self.registry,
            registration,
            on_remove=self._capture_removed,
            on_update=self._capture_updated,
        )

    def get_captures(self) -> List[CaptureInfo]:
        return self.registry.list()

    def clear_captures(self) -> int:
        count = self.registry.clear()
        self.announce(f"{count} captures removed")
        return count

    def _capture_removed(self, registration: CaptureRegistration) -> None:
        self.announce(f"capture removed: {registration.method} {registration.describe()}")

    def _capture_updated(self, registration: CaptureRegistration) -> None:
        self.announce(f"capture updated: {registration.method} {registration.describe()}")

    # Diagnostics -----------------------------------------------------------

    def announce(self, message: str) -> None:
        announce(self.config, message)

    def report_error(self, message: str, exc: BaseException) -> None:
        try:
            self.emitter.report_error(message, exc)
        except Exception:
            logger.exception("%s", message)


# ---------------------------------------------------------------------------
# Process wide default instance
# ---------------------------------------------------------------------------


_default_lock = threading.Lock()
_default_logger: Optional[ApiLogger] = None


def create_logger(
    config: Optional[Mapping[str, Any]] = None,
    *,
    emitter: Optional[EventEmitter] = None,
    **options: Any,
) -> ApiLogger:
    """Build an isolated logger; nothing is intercepted until ``init()``."""

    engine = ApiLogger(emitter=emitter)
    engine._merge(config, **options)
    return engine


def get_default_logger() -> ApiLogger:
    global _default_logger
    with _default_lock:
        if _default_logger is None:
            _default_logger = ApiLogger()
        return _default_logger
