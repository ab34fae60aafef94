"""
Shared pytest fixtures for all tests.

Provides isolated loggers with recording sinks and in-process transports
for requests and httpx so no test touches the network.
"""

import io

import pytest
import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from api_logger import RecordingEmitter, create_logger


class StubAdapter(BaseAdapter):
    """requests transport answering from a handler function.

    The handler receives the ``PreparedRequest`` and returns
    ``(status, headers, body)`` or raises to simulate a transport failure.
    """

    def __init__(self, handler):
        super().__init__()
        self.handler = handler
        self.sent = []

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        self.sent.append(request)
        status, headers, body = self.handler(request)

        response = requests.Response()
        response.status_code = status
        response.headers = CaseInsensitiveDict(headers)
        response.raw = body if hasattr(body, "read") else io.BytesIO(_as_bytes(body))
        response.url = request.url
        response.request = request
        response.encoding = "utf-8"
        return response

    def close(self):
        pass


class FailingRaw(io.RawIOBase):
    """File-like body whose reads fail mid response."""

    def read(self, size=-1):
        raise OSError("connection reset while reading body")


def _as_bytes(body):
    if body is None:
        return b""
    if isinstance(body, str):
        return body.encode("utf-8")
    return body


@pytest.fixture
def failing_body():
    """Response body that raises as soon as it is read."""
    return FailingRaw()


@pytest.fixture
def emitter():
    """Sink collecting every emitted event and reported error."""
    return RecordingEmitter()


@pytest.fixture
def api_logger(emitter):
    """Installed logger routed to the recording sink, removed afterwards."""
    engine = create_logger(emitter=emitter, log_to_console=False)
    engine.init()
    yield engine
    engine.shutdown()


@pytest.fixture
def stub_session():
    """Factory for requests sessions backed by a StubAdapter."""
    sessions = []

    def factory(handler):
        adapter = StubAdapter(handler)
        session = requests.Session()
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        sessions.append(session)
        return session, adapter

    yield factory
    for session in sessions:
        session.close()
