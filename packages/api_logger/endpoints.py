"""URL helpers: endpoint grouping keys and admission filtering."""

from __future__ import annotations

from typing import Iterable
from urllib.parse import urlsplit

from .config import LoggerConfig


def classify(url: str) -> str:
    """Return the grouping key for ``url``: its first two path segments.

    ``https://api.example.com/v1/users/42`` groups under ``/v1/users``. A value
    that is not an absolute URL gets the same split applied to the raw string.
    """

    try:
        parsed = urlsplit(url)
    except ValueError:
        parsed = None

    if parsed is not None and parsed.scheme and parsed.netloc:
        return "/".join((parsed.path or "/").split("/")[:3])
    return "/".join(str(url).split("/")[:3])


def should_track(url: str, config: LoggerConfig) -> bool:
    if config.include_urls:
        return _contains_any(url, config.include_urls)
    if config.exclude_urls:
        return not _contains_any(url, config.exclude_urls)
    return True


def _contains_any(url: str, patterns: Iterable[str]) -> bool:
    return any(pattern in url for pattern in patterns)
