"""Event records produced for intercepted calls and the sinks receiving them."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol

logger = logging.getLogger(__name__)


PENDING = "pending"
COMPLETE = "complete"
ERROR = "error"


@dataclass(frozen=True)
class EventRecord:
    surface: str
    phase: str
    method: str
    url: str
    endpoint: str
    started_at: float
    request_headers: dict[str, str] = field(default_factory=dict)
    request_body: Any = None
    status: Optional[int] = None
    response_headers: Optional[dict[str, str]] = None
    response_body: Any = None
    duration: Optional[float] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.phase != PENDING


class EventEmitter(Protocol):
    def emit(self, record: EventRecord) -> None:  # pragma: no cover - interface
        ...

    def report_error(
        self, message: str, exc: BaseException
    ) -> None:  # pragma: no cover - interface
        ...


class NoopEmitter:
    def emit(self, record: EventRecord) -> None:  # pragma: no cover
        return None

    def report_error(self, message: str, exc: BaseException) -> None:
        logger.debug("%s: %r", message, exc)


class RecordingEmitter:
    """Keeps every record and reported error in memory."""

    def __init__(self) -> None:
        self.records: List[EventRecord] = []
        self.errors: List[tuple[str, BaseException]] = []
        self._lock = threading.Lock()

    def emit(self, record: EventRecord) -> None:
        with self._lock:
            self.records.append(record)

    def report_error(self, message: str, exc: BaseException) -> None:
        with self._lock:
            self.errors.append((message, exc))

    def terminal(self) -> List[EventRecord]:
        return [r for r in self.records if r.is_terminal]
