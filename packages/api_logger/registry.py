"""Capture registry for api_logger.

This module defines the data structures used to register user callbacks
("captures") against a method and URL pattern, and to resolve which single
capture applies to an outbound call.
"""

from __future__ import annotations

import random
import re
import string
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Pattern, Union


# ---------------------------------------------------------------------------
# Callback protocol
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CallInfo:
    """Context handed to a capture callback next to the decoded body."""

    method: str
    url: str
    headers: dict[str, str]
    is_response: bool = False
    status: Optional[int] = None
    response_headers: Optional[dict[str, str]] = None
    duration: Optional[float] = None


class CaptureResult:
    """Base of the values a capture callback may return."""


class Unchanged(CaptureResult):
    def __repr__(self) -> str:
        return "UNCHANGED"


@dataclass(frozen=True)
class Replace(CaptureResult):
    """Substitute ``value`` for the request body before it is sent."""

    value: Any


UNCHANGED = Unchanged()

CaptureCallback = Callable[[Any, CallInfo], Optional[CaptureResult]]
UrlPattern = Union[str, Pattern[str]]


def coerce_result(result: Any) -> CaptureResult:
    if result is None:
        return UNCHANGED
    if isinstance(result, CaptureResult):
        return result
    raise TypeError(
        "capture callbacks must return Replace(value), UNCHANGED or None, "
        f"got {type(result).__name__}"
    )


# ---------------------------------------------------------------------------
# Registrations
# ---------------------------------------------------------------------------


_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_capture_id() -> str:
    millis = int(time.time() * 1000)
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{millis}{suffix}"


@dataclass
class CaptureRegistration:
    id: str
    method: str
    url_pattern: UrlPattern
    callback: CaptureCallback

    def matches(self, method: str, url: str) -> bool:
        if self.method != "*" and self.method != method:
            return False
        if isinstance(self.url_pattern, str):
            return _normalize_url(self.url_pattern) in _normalize_url(url)
        return self.url_pattern.search(url) is not None

    def describe(self) -> str:
        return describe_pattern(self.url_pattern)


@dataclass(frozen=True)
class CaptureInfo:
    id: str
    method: str
    pattern: str


_SCHEME_RE = re.compile(r"^https?://")

_FLAG_LETTERS = (
    (re.IGNORECASE, "i"),
    (re.MULTILINE, "m"),
    (re.DOTALL, "s"),
    (re.VERBOSE, "x"),
)


def _normalize_url(value: str) -> str:
    value = _SCHEME_RE.sub("", value, count=1)
    if value.endswith("/"):
        value = value[:-1]
    return value


def describe_pattern(pattern: UrlPattern) -> str:
    if isinstance(pattern, str):
        return pattern
    flags = "".join(letter for flag, letter in _FLAG_LETTERS if pattern.flags & flag)
    return f"/{pattern.pattern}/{flags}"


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class CaptureRegistry:
    """Ordered captures; the first registration that matches a call wins."""

    def __init__(self) -> None:
        self._captures: List[CaptureRegistration] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._captures)

    def register(
        self, method: str, url_pattern: UrlPattern, callback: CaptureCallback
    ) -> CaptureRegistration:
        if not isinstance(url_pattern, (str, re.Pattern)):
            raise TypeError(
                "url_pattern must be a string or a compiled regular expression"
            )
        if not callable(callback):
            raise TypeError("callback must be callable")

        registration = CaptureRegistration(
            id=generate_capture_id(),
            method=method.upper(),
            url_pattern=url_pattern,
            callback=callback,
        )
        with self._lock:
            self._captures.append(registration)
        return registration

    def get(self, capture_id: str) -> Optional[CaptureRegistration]:
        for registration in list(self._captures):
            if registration.id == capture_id:
                return registration
        return None

    def remove(self, capture_id: str) -> bool:
        with self._lock:
            for index, registration in enumerate(self._captures):
                if registration.id == capture_id:
                    del self._captures[index]
                    return True
        return False

    def update(self, capture_id: str, callback: CaptureCallback) -> bool:
        if not callable(callback):
            raise TypeError("callback must be callable")
        with self._lock:
            registration = self.get(capture_id)
            if registration is None:
                return False
            registration.callback = callback
            return True

    def match(self, method: str, url: str) -> Optional[CaptureRegistration]:
        method = method.upper()
        for registration in list(self._captures):
            if registration.matches(method, url):
                return registration
        return None

    def list(self) -> List[CaptureInfo]:
        return [
            CaptureInfo(id=c.id, method=c.method, pattern=c.describe())
            for c in list(self._captures)
        ]

    def clear(self) -> int:
        with self._lock:
            count = len(self._captures)
            self._captures.clear()
        return count


class CaptureHandle:
    """Handle returned by ``capture()`` for managing one registration."""

    def __init__(
        self,
        registry: CaptureRegistry,
        registration: CaptureRegistration,
        *,
        on_remove: Optional[Callable[[CaptureRegistration], None]] = None,
        on_update: Optional[Callable[[CaptureRegistration], None]] = None,
    ):
        self._registry = registry
        self._registration = registration
        self._on_remove = on_remove
        self._on_update = on_update

    @property
    def id(self) -> str:
        return self._registration.id

    @property
    def method(self) -> str:
        return self._registration.method

    @property
    def url_pattern(self) -> UrlPattern:
        return self._registration.url_pattern

    def remove(self) -> bool:
        removed = self._registry.remove(self.id)
        if removed and self._on_remove is not None:
            self._on_remove(self._registration)
        return removed

    def update(self, callback: CaptureCallback) -> bool:
        updated = self._registry.update(self.id, callback)
        if updated and self._on_update is not None:
            self._on_update(self._registration)
        return updated

    def __repr__(self) -> str:
        return (
            f"CaptureHandle(id={self.id!r}, method={self.method!r}, "
            f"pattern={self._registration.describe()!r})"
        )
