"""Per call interception pipeline shared by every call surface.

Each surface adapter (see :mod:`api_logger.http_proxy`) drives one
:class:`CallPipeline` per outbound call::

    pipeline = CallPipeline.admit(logger, surface=..., method=..., url=...)
    if pipeline is None:
        return send(request)          # not tracked, untouched
    new_body = pipeline.process_request(body, content_type=..., headers=...)
    pipeline.emit_pending()
    try:
        response = send(request)      # possibly rebuilt with ``new_body``
    except BaseException as exc:
        pipeline.fail(exc)
        raise
    ...read the body if pipeline.wants_response_body()...
    pipeline.process_response(...)
    pipeline.emit_complete()

The adapters differ only in how they read bodies and rebuild requests; the
decisions (admission, matching, callback invocation, event content) all live
here so both surfaces behave identically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Optional

from . import codec
from .emitter import COMPLETE, ERROR, PENDING, EventRecord
from .endpoints import classify, should_track
from .registry import CallInfo, CaptureRegistration, Replace, coerce_result

if TYPE_CHECKING:  # pragma: no cover
    from .engine import ApiLogger

logger = logging.getLogger(__name__)


class CallState(str, Enum):
    ADMITTED = "admitted"
    REQUEST_PROCESSED = "request_processed"
    SENT = "sent"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass
class CallContext:
    surface: str
    method: str
    url: str
    endpoint: str
    started_at: float = field(default_factory=time.time)
    clock: float = field(default_factory=time.perf_counter)
    state: CallState = CallState.ADMITTED
    request_headers: dict[str, str] = field(default_factory=dict)
    request_body: Any = None
    status: Optional[int] = None
    response_headers: Optional[dict[str, str]] = None
    response_body: Any = None
    duration: Optional[float] = None
    error: Optional[str] = None

    def elapsed(self) -> float:
        return (time.perf_counter() - self.clock) * 1000.0


class CallPipeline:
    def __init__(self, engine: "ApiLogger", context: CallContext):
        self._engine = engine
        self.context = context

    @classmethod
    def admit(
        cls, engine: "ApiLogger", *, surface: str, method: str, url: str
    ) -> Optional["CallPipeline"]:
        """Return a pipeline for a tracked call, ``None`` to pass it through."""

        config = engine.config
        if not config.enabled or not should_track(url, config):
            return None
        context = CallContext(
            surface=surface,
            method=method.upper(),
            url=url,
            endpoint=classify(url),
        )
        return cls(engine, context)

    # Request phase ---------------------------------------------------------

    def process_request(
        self,
        body: Any,
        *,
        content_type: Optional[str],
        headers: Mapping[str, str],
    ) -> Optional[Any]:
        """Decode the outbound body and run the request phase capture.

        Returns the re-encoded wire body when a capture replaced it, ``None``
        when the original body must be sent unmodified.
        """

        ctx = self.context
        ctx.request_headers = dict(headers)
        rewritten: Optional[Any] = None

        decoded: Optional[codec.DecodedBody] = None
        if self._engine.config.log_request_body:
            try:
                decoded = codec.decode(body, content_type)
            except Exception as exc:
                self._engine.report_error(
                    f"Error decoding request body ({ctx.surface})", exc
                )
            else:
                ctx.request_body = decoded.value

        registration = self._match()
        if registration is not None and decoded is not None and decoded.value is not None:
            info = CallInfo(method=ctx.method, url=ctx.url, headers=ctx.request_headers)
            try:
                result = coerce_result(registration.callback(decoded.value, info))
            except Exception as exc:
                self._engine.report_error(
                    f"Error in capture callback ({ctx.surface})", exc
                )
            else:
                if isinstance(result, Replace):
                    try:
                        rewritten = codec.encode(result.value, decoded)
                    except Exception as exc:
                        self._engine.report_error(
                            f"Error encoding replaced body ({ctx.surface})", exc
                        )
                    else:
                        ctx.request_body = result.value

        ctx.state = CallState.REQUEST_PROCESSED
        return rewritten

    def emit_pending(self) -> None:
        ctx = self.context
        total = self._engine.counter.increment(ctx.endpoint)
        self._emit(self._record(PENDING))
        if total % 10 == 0:
            self._engine.announce(f"{total} events captured")
        ctx.state = CallState.SENT

    # Response phase --------------------------------------------------------

    def wants_response_body(self, *, streamed: bool = False) -> bool:
        """Whether the adapter should read the response body.

        A streamed response is only read when a capture needs its body;
        otherwise the caller gets the stream untouched.
        """

        if self._match() is not None:
            return True
        return not streamed and self._engine.config.log_response_body

    def process_response(
        self,
        *,
        status: int,
        headers: Mapping[str, str],
        body: Any = None,
        content_type: Optional[str] = None,
        read_error: Optional[BaseException] = None,
    ) -> None:
        ctx = self.context
        ctx.duration = ctx.elapsed()
        ctx.status = status
        ctx.response_headers = dict(headers)
        ctx.state = CallState.RESOLVED

        if read_error is not None:
            ctx.error = f"Error reading response body: {describe_error(read_error)}"
            return

        if body is not None:
            try:
                ctx.response_body = codec.decode(body, content_type).value
            except Exception as exc:
                self._engine.report_error(
                    f"Error decoding response body ({ctx.surface})", exc
                )
                ctx.error = f"Error reading response body: {describe_error(exc)}"
                return

        registration = self._match()
        if registration is None:
            return

        info = CallInfo(
            method=ctx.method,
            url=ctx.url,
            headers=ctx.request_headers,
            is_response=True,
            status=status,
            response_headers=ctx.response_headers,
            duration=ctx.duration,
        )
        try:
            # The response has already been handed to the caller; the
            # callback's return value is ignored.
            registration.callback(ctx.response_body, info)
        except Exception as exc:
            self._engine.report_error(
                f"Error in capture callback ({ctx.surface} response)", exc
            )
        else:
            self._engine.announce(
                f"Capture executed ({ctx.surface} response): {ctx.method} {ctx.url}"
            )

    def emit_complete(self) -> None:
        record = self._record(ERROR if self.context.error else COMPLETE)
        self._finish(record)

    def fail(self, exc: BaseException) -> None:
        """Record a transport failure; the caller re-raises ``exc``."""

        ctx = self.context
        ctx.duration = ctx.elapsed()
        ctx.error = describe_error(exc)
        ctx.state = CallState.FAILED
        self._finish(self._record(ERROR))

    # Helpers ---------------------------------------------------------------

    def _match(self) -> Optional[CaptureRegistration]:
        return self._engine.registry.match(self.context.method, self.context.url)

    def _finish(self, record: EventRecord) -> None:
        self._engine.history.append(record)
        self._emit(record)

    def _emit(self, record: EventRecord) -> None:
        try:
            self._engine.emitter.emit(record)
        except Exception:
            logger.exception("event emitter failed for %s %s", record.method, record.url)

    def _record(self, phase: str) -> EventRecord:
        ctx = self.context
        return EventRecord(
            surface=ctx.surface,
            phase=phase,
            method=ctx.method,
            url=ctx.url,
            endpoint=ctx.endpoint,
            started_at=ctx.started_at,
            request_headers=dict(ctx.request_headers),
            request_body=ctx.request_body,
            status=ctx.status,
            response_headers=ctx.response_headers,
            response_body=ctx.response_body,
            duration=ctx.duration,
            error=ctx.error,
        )


def describe_error(exc: BaseException) -> str:
    if isinstance(exc, asyncio.CancelledError):
        return "request cancelled"
    message = str(exc)
    return message or type(exc).__name__
