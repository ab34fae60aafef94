"""Client-facing exports for api_logger.

The module level functions operate on a process wide default
:class:`ApiLogger`; use :func:`create_logger` for isolated instances.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from .config import LoggerConfig
from .console import ConsoleEmitter
from .emitter import EventEmitter, EventRecord, NoopEmitter, RecordingEmitter
from .engine import ApiLogger, create_logger, get_default_logger
from .registry import (
    UNCHANGED,
    CallInfo,
    CaptureCallback,
    CaptureHandle,
    CaptureInfo,
    Replace,
    Unchanged,
    UrlPattern,
)
from .stats import Stats


def init(config: Optional[Mapping[str, Any]] = None, **options: Any) -> ApiLogger:
    return get_default_logger().init(config, **options)


def capture(method: str, url_pattern: UrlPattern, callback: CaptureCallback) -> CaptureHandle:
    return get_default_logger().capture(method, url_pattern, callback)


def get_captures() -> List[CaptureInfo]:
    return get_default_logger().get_captures()


def clear_captures() -> int:
    return get_default_logger().clear_captures()


def get_stats() -> Stats:
    return get_default_logger().get_stats()


def get_events() -> List[EventRecord]:
    return get_default_logger().get_events()


def set_config(config: Optional[Mapping[str, Any]] = None, **options: Any) -> ApiLogger:
    return get_default_logger().set_config(config, **options)


def get_config() -> Dict[str, Any]:
    return get_default_logger().get_config()


def enable() -> ApiLogger:
    return get_default_logger().enable()


def disable() -> ApiLogger:
    return get_default_logger().disable()


def reset() -> ApiLogger:
    return get_default_logger().reset()


def enable_console_logging() -> ApiLogger:
    return get_default_logger().enable_console_logging()


def disable_console_logging() -> ApiLogger:
    return get_default_logger().disable_console_logging()


def shutdown() -> bool:
    return get_default_logger().shutdown()


__all__ = [
    "ApiLogger",
    "CallInfo",
    "CaptureHandle",
    "CaptureInfo",
    "ConsoleEmitter",
    "EventEmitter",
    "EventRecord",
    "LoggerConfig",
    "NoopEmitter",
    "RecordingEmitter",
    "Replace",
    "Stats",
    "UNCHANGED",
    "Unchanged",
    "capture",
    "clear_captures",
    "create_logger",
    "disable",
    "disable_console_logging",
    "enable",
    "enable_console_logging",
    "get_captures",
    "get_config",
    "get_default_logger",
    "get_events",
    "get_stats",
    "init",
    "reset",
    "set_config",
    "shutdown",
]
