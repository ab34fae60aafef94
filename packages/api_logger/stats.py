"""Per endpoint counters and the bounded history of finished events."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List

from .emitter import EventRecord


@dataclass(frozen=True)
class Stats:
    total_events: int = 0
    events_by_endpoint: Dict[str, int] = field(default_factory=dict)


class EndpointCounter:
    def __init__(self) -> None:
        self._total = 0
        self._by_endpoint: Dict[str, int] = {}
        self._lock = threading.Lock()

    def increment(self, endpoint: str) -> int:
        """Count one call and return the new total."""

        with self._lock:
            self._total += 1
            self._by_endpoint[endpoint] = self._by_endpoint.get(endpoint, 0) + 1
            return self._total

    def snapshot(self) -> Stats:
        with self._lock:
            return Stats(total_events=self._total, events_by_endpoint=dict(self._by_endpoint))

    def reset(self) -> None:
        with self._lock:
            self._total = 0
            self._by_endpoint = {}


class EventHistory:
    """Most recent terminal events, capped at ``max_logged_events``."""

    def __init__(self, capacity: int) -> None:
        self._events: Deque[EventRecord] = deque(maxlen=max(capacity, 0))
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._events.maxlen or 0

    def resize(self, capacity: int) -> None:
        capacity = max(capacity, 0)
        with self._lock:
            if capacity != self._events.maxlen:
                self._events = deque(self._events, maxlen=capacity)

    def append(self, record: EventRecord) -> None:
        with self._lock:
            self._events.append(record)

    def snapshot(self) -> List[EventRecord]:
        with self._lock:
            return list(self._events)
