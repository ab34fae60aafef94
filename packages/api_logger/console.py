"""Console presentation of intercepted calls through ``logging``."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, List

from .config import LoggerConfig
from .emitter import EventRecord

console_logger = logging.getLogger("api_logger.console")

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

_RESET = "\x1b[0m"
METHOD_COLORS = {
    "GET": "\x1b[34m",
    "POST": "\x1b[32m",
    "PUT": "\x1b[33m",
    "DELETE": "\x1b[31m",
    "PATCH": "\x1b[35m",
}
STATUS_COLORS = {
    "success": "\x1b[32m",
    "error": "\x1b[31m",
    "pending": "\x1b[90m",
}


def console_enabled(config: LoggerConfig, level: int) -> bool:
    """Per logger threshold; the shared ``logging`` logger is left alone."""

    return config.log_to_console and level >= LOG_LEVELS[config.log_level]


def announce(config: LoggerConfig, message: str) -> None:
    """Log a lifecycle message when console output is on."""

    if console_enabled(config, logging.INFO):
        console_logger.info("API Logger: %s", message)


def format_time(timestamp: float) -> str:
    moment = datetime.fromtimestamp(timestamp)
    return moment.strftime("%H:%M:%S") + f".{moment.microsecond // 1000:03d}"


class ConsoleEmitter:
    def __init__(self, config: LoggerConfig):
        self.config = config

    def emit(self, record: EventRecord) -> None:
        if console_enabled(self.config, logging.INFO):
            header = self._header(record)
            details = self._details(record)

            if self.config.group_by_endpoint:
                console_logger.info("\n    ".join([header, *details]))
            else:
                console_logger.info(header)
                for line in details:
                    console_logger.info(line)

        if record.error and console_enabled(self.config, logging.ERROR):
            console_logger.error("Error: %s", record.error)

    def report_error(self, message: str, exc: BaseException) -> None:
        if console_enabled(self.config, logging.ERROR):
            console_logger.error("%s: %s", message, exc, exc_info=exc)

    def _header(self, record: EventRecord) -> str:
        status = str(record.status) if record.status is not None else "PENDING"
        method = record.method
        if self.config.use_colors:
            method = self._paint(method, METHOD_COLORS.get(method, STATUS_COLORS["pending"]))
            status = self._paint(status, self._status_color(record.status))
        path = record.url.split("?")[0]
        return f"{format_time(record.started_at)} {method} {path} {status}"

    def _details(self, record: EventRecord) -> List[str]:
        lines: List[str] = []
        if record.request_headers:
            lines.append(f"Request headers: {record.request_headers}")
        if self.config.log_request_body and record.request_body is not None:
            lines.append(f"Request body: {_preview(record.request_body)}")
        if record.status is not None:
            lines.append(f"Status: {record.status}")
        if record.response_headers:
            lines.append(f"Response headers: {record.response_headers}")
        if self.config.log_response_body and record.response_body is not None:
            lines.append(f"Response body: {_preview(record.response_body)}")
        if record.duration is not None:
            lines.append(f"Duration: {record.duration:.0f}ms")
        return lines

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{_RESET}"

    def _status_color(self, status: Any) -> str:
        if status is None:
            return STATUS_COLORS["pending"]
        if 200 <= status < 300:
            return STATUS_COLORS["success"]
        return STATUS_COLORS["error"]


def _preview(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return f"<{len(value)} bytes>"
    return repr(value) if not isinstance(value, str) else value
