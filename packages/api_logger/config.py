"""Configuration model for api_logger."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


LogLevel = Literal["debug", "info", "warn", "error"]


class LoggerConfig(BaseModel):
    """Process wide options read by every pipeline stage.

    Fields use snake_case; the camelCase aliases (``logRequestBody``,
    ``includeUrls`` ...) are accepted everywhere a partial config is merged.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    enabled: bool = True
    max_logged_events: int = 100
    exclude_urls: List[str] = []
    include_urls: List[str] = []
    log_request_body: bool = True
    log_response_body: bool = True
    group_by_endpoint: bool = True
    use_colors: bool = True
    log_level: LogLevel = "info"
    log_to_console: bool = True

    def merge(self, partial: Optional[Mapping[str, Any]] = None, **options: Any) -> None:
        """Overwrite the given keys in place, all or nothing.

        Keys may be field names or their camelCase aliases. Unknown keys raise
        ``ValueError``; invalid values raise pydantic's ``ValidationError``.
        In both cases the config is left untouched.
        """

        updates: Dict[str, Any] = dict(partial or {})
        updates.update(options)
        resolved = {_resolve_field(key): value for key, value in updates.items()}
        validated = LoggerConfig.model_validate({**self.model_dump(), **resolved})
        for name in resolved:
            setattr(self, name, getattr(validated, name))

    def snapshot(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


def _resolve_field(key: str) -> str:
    fields = LoggerConfig.model_fields
    if key in fields:
        return key
    for name, field in fields.items():
        if field.alias == key:
            return name
    raise ValueError(f"unknown api_logger option '{key}'")
