"""HTTP interception for api_logger.

This module wraps the ``send`` methods of the HTTP clients used by the host
application: ``requests.Session`` and ``httpx.Client`` on the blocking side,
``httpx.AsyncClient`` on the awaitable side. Every convenience helper of those
libraries funnels through ``send``, so one wrapped ``send`` sees each call
once. The wrappers run the call through a :class:`~api_logger.pipeline.CallPipeline`
owned by the currently installed :class:`~api_logger.engine.ApiLogger`.

The class level patches are applied at most once per process. Installing a
different logger only swaps the dispatch target; it never stacks wrappers.
"""

from __future__ import annotations

import asyncio
import contextvars
import io
import logging
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Iterator, List, Optional

import httpx
import requests

from .pipeline import CallPipeline

if TYPE_CHECKING:  # pragma: no cover
    from .engine import ApiLogger

logger = logging.getLogger(__name__)

SURFACE_REQUESTS = "requests"
SURFACE_HTTPX = "httpx"
SURFACE_HTTPX_ASYNC = "httpx-async"

# Set while the wrapped ``send`` runs so that nested sends (requests follows
# redirects by calling ``Session.send`` again) pass straight through. Capture
# callbacks run outside it; calls they make are tracked like any other.
_IN_CALL: contextvars.ContextVar[bool] = contextvars.ContextVar(
    "api_logger_in_call", default=False
)


@contextmanager
def _untracked_sends() -> Iterator[None]:
    token = _IN_CALL.set(True)
    try:
        yield
    finally:
        _IN_CALL.reset(token)


# ---------------------------------------------------------------------------
# requests
# ---------------------------------------------------------------------------


class RequestsSendProxy:
    def __init__(self, send: Callable[..., Any], *, engine: "ApiLogger"):
        self._send = send
        self._engine = engine

    def __call__(self, request: requests.PreparedRequest, **kwargs: Any) -> Any:
        pipeline = CallPipeline.admit(
            self._engine,
            surface=SURFACE_REQUESTS,
            method=request.method or "GET",
            url=request.url or "",
        )
        if pipeline is None:
            with _untracked_sends():
                return self._send(request, **kwargs)

        body = pipeline.process_request(
            request.body,
            content_type=request.headers.get("Content-Type"),
            headers=request.headers,
        )
        if body is not None:
            request = _rebuild_prepared_request(request, body)
        pipeline.emit_pending()

        streamed = bool(kwargs.get("stream"))
        try:
            with _untracked_sends():
                response = self._send(request, **kwargs)
        except BaseException as exc:
            pipeline.fail(exc)
            raise

        content = None
        read_error: Optional[BaseException] = None
        if pipeline.wants_response_body(streamed=streamed):
            try:
                content = response.content
            except Exception as exc:
                read_error = exc
            else:
                if streamed:
                    response.raw = io.BytesIO(content or b"")

        pipeline.process_response(
            status=response.status_code,
            headers=response.headers,
            body=content,
            content_type=response.headers.get("Content-Type"),
            read_error=read_error,
        )
        pipeline.emit_complete()
        return response


def _rebuild_prepared_request(
    request: requests.PreparedRequest, body: Any
) -> requests.PreparedRequest:
    if isinstance(body, str):
        body = body.encode("utf-8")
    prepared = request.copy()
    prepared.body = body
    prepared.headers.pop("Content-Length", None)
    prepared.prepare_content_length(body)
    return prepared


def patch_requests() -> Callable[[], None]:
    session_cls = requests.Session
    original_send = session_cls.send

    def patched_send(self, request, **kwargs):
        bound_send = original_send.__get__(self, session_cls)  # type: ignore[attr-defined]
        engine = installed_logger()
        if engine is None or _IN_CALL.get():
            return bound_send(request, **kwargs)
        return RequestsSendProxy(bound_send, engine=engine)(request, **kwargs)

    session_cls.send = patched_send  # type: ignore[assignment]

    def restore():
        session_cls.send = original_send

    return restore


# ---------------------------------------------------------------------------
# httpx
# ---------------------------------------------------------------------------


def _request_body(request: httpx.Request) -> Any:
    try:
        return request.content
    except httpx.RequestNotRead:
        # Streaming upload; hand the stream over as an opaque body.
        return request.stream


def _rebuild_httpx_request(request: httpx.Request, body: Any) -> httpx.Request:
    if isinstance(body, str):
        body = body.encode("utf-8")
    headers = request.headers.copy()
    headers.pop("Content-Length", None)
    headers.pop("Transfer-Encoding", None)
    return httpx.Request(
        request.method,
        request.url,
        headers=headers,
        content=body,
        extensions=request.extensions,
    )


def _replay_httpx_stream(response: httpx.Response, content: bytes) -> None:
    """Let the caller stream a response whose body was already read."""

    response.stream = httpx.ByteStream(content)
    response.is_stream_consumed = False
    response.is_closed = False


class _HTTPXProxyBase:
    surface = SURFACE_HTTPX

    def __init__(self, send: Callable[..., Any], *, engine: "ApiLogger"):
        self._send = send
        self._engine = engine

    def _begin(self, request: httpx.Request):
        pipeline = CallPipeline.admit(
            self._engine,
            surface=self.surface,
            method=request.method,
            url=str(request.url),
        )
        if pipeline is None:
            return None, request

        body = pipeline.process_request(
            _request_body(request),
            content_type=request.headers.get("Content-Type"),
            headers=request.headers,
        )
        if body is not None:
            request = _rebuild_httpx_request(request, body)
        pipeline.emit_pending()
        return pipeline, request

    def _finish(
        self,
        pipeline: CallPipeline,
        response: httpx.Response,
        content: Optional[bytes],
        read_error: Optional[BaseException],
    ) -> None:
        pipeline.process_response(
            status=response.status_code,
            headers=response.headers,
            body=content,
            content_type=response.headers.get("Content-Type"),
            read_error=read_error,
        )
        pipeline.emit_complete()


class HTTPXSendProxy(_HTTPXProxyBase):
    surface = SURFACE_HTTPX

    def __call__(self, request: httpx.Request, **kwargs: Any) -> httpx.Response:
        pipeline, request = self._begin(request)
        if pipeline is None:
            with _untracked_sends():
                return self._send(request, **kwargs)

        streamed = bool(kwargs.get("stream"))
        try:
            with _untracked_sends():
                response = self._send(request, **kwargs)
        except BaseException as exc:
            pipeline.fail(exc)
            raise

        content = None
        read_error: Optional[BaseException] = None
        if pipeline.wants_response_body(streamed=streamed):
            try:
                content = response.read()
            except Exception as exc:
                read_error = exc
            else:
                if streamed:
                    _replay_httpx_stream(response, content)

        self._finish(pipeline, response, content, read_error)
        return response


class AsyncHTTPXSendProxy(_HTTPXProxyBase):
    surface = SURFACE_HTTPX_ASYNC

    async def __call__(self, request: httpx.Request, **kwargs: Any) -> httpx.Response:
        pipeline, request = self._begin(request)
        if pipeline is None:
            with _untracked_sends():
                return await self._send(request, **kwargs)

        streamed = bool(kwargs.get("stream"))
        try:
            with _untracked_sends():
                response = await self._send(request, **kwargs)
        except BaseException as exc:
            pipeline.fail(exc)
            raise

        content = None
        read_error: Optional[BaseException] = None
        if pipeline.wants_response_body(streamed=streamed):
            try:
                content = await response.aread()
            except asyncio.CancelledError as exc:
                pipeline.fail(exc)
                raise
            except Exception as exc:
                read_error = exc
            else:
                if streamed:
                    _replay_httpx_stream(response, content)

        self._finish(pipeline, response, content, read_error)
        return response


def patch_httpx() -> Callable[[], None]:
    client_cls = httpx.Client
    async_client_cls = httpx.AsyncClient

    original_send = client_cls.send
    original_async_send = async_client_cls.send

    def patched_send(self, request, **kwargs):
        bound_send = original_send.__get__(self, client_cls)  # type: ignore[attr-defined]
        engine = installed_logger()
        if engine is None or _IN_CALL.get():
            return bound_send(request, **kwargs)
        return HTTPXSendProxy(bound_send, engine=engine)(request, **kwargs)

    async def patched_async_send(self, request, **kwargs):
        bound_send = original_async_send.__get__(self, async_client_cls)  # type: ignore[attr-defined]
        engine = installed_logger()
        if engine is None or _IN_CALL.get():
            return await bound_send(request, **kwargs)
        return await AsyncHTTPXSendProxy(bound_send, engine=engine)(request, **kwargs)

    client_cls.send = patched_send  # type: ignore[assignment]
    async_client_cls.send = patched_async_send  # type: ignore[assignment]

    def restore():
        client_cls.send = original_send
        async_client_cls.send = original_async_send

    return restore


# ---------------------------------------------------------------------------
# Installation
# ---------------------------------------------------------------------------


_install_lock = threading.Lock()
_active_logger: Optional["ApiLogger"] = None
_restores: List[Callable[[], None]] = []


def installed_logger() -> Optional["ApiLogger"]:
    return _active_logger


def is_installed() -> bool:
    return bool(_restores)


def install(engine: "ApiLogger") -> bool:
    """Route intercepted calls to ``engine``.

    Returns ``True`` when the class level patches were applied by this call,
    ``False`` when they were already in place.
    """

    global _active_logger
    with _install_lock:
        _active_logger = engine
        if _restores:
            return False
        _restores.append(patch_requests())
        _restores.append(patch_httpx())
        logger.debug("patched requests and httpx send methods")
        return True


def uninstall(engine: Optional["ApiLogger"] = None) -> bool:
    """Restore the original ``send`` methods.

    When ``engine`` is given, nothing happens unless it is the active logger.
    """

    global _active_logger
    with _install_lock:
        if engine is not None and engine is not _active_logger:
            return False
        while _restores:
            _restores.pop()()
        _active_logger = None
        logger.debug("restored requests and httpx send methods")
        return True
