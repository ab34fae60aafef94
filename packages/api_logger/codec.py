"""Payload codec shared by both call surfaces.

A request body reaches the pipeline in whatever wire form the client library
prepared: ``str`` or ``bytes`` for ``requests``, ``bytes`` for ``httpx``, and
occasionally an iterator or file object for streamed uploads. :func:`decode`
classifies that body once into a :class:`DecodedBody` and :func:`encode`
rebuilds the wire form of a replacement value from the same classification.
"""

from __future__ import annotations

import email
import email.policy
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import parse_qsl, urlencode


FORM_URLENCODED = "application/x-www-form-urlencoded"
MULTIPART_FORM = "multipart/form-data"
DEFAULT_CHARSET = "utf-8"


class BodyKind(str, Enum):
    EMPTY = "empty"
    TEXT = "text"
    FORM = "form"
    OPAQUE = "opaque"


@dataclass(frozen=True)
class DecodedBody:
    """A body classified at decode time.

    ``value`` is the logical value handed to captures and events. The
    remaining fields describe the original wire form so a replacement can be
    encoded back into it.
    """

    kind: BodyKind
    value: Any
    raw: Any = None
    charset: str = DEFAULT_CHARSET
    as_bytes: bool = False
    boundary: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.kind is BodyKind.EMPTY


EMPTY_BODY = DecodedBody(kind=BodyKind.EMPTY, value=None)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def decode_text(text: Optional[str]) -> Any:
    """Parse ``text`` as JSON, falling back to the text itself."""

    if not text:
        return None
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        return text


def decode(raw: Any, content_type: Optional[str] = None) -> DecodedBody:
    if raw is None or (isinstance(raw, (str, bytes, bytearray)) and len(raw) == 0):
        return DecodedBody(kind=BodyKind.EMPTY, value=None, raw=raw)

    mime, params = parse_content_type(content_type)
    charset = params.get("charset") or DEFAULT_CHARSET

    if isinstance(raw, (bytes, bytearray, memoryview)):
        as_bytes = True
        data = bytes(raw)
    elif isinstance(raw, str):
        as_bytes = False
        data = None
    else:
        return DecodedBody(kind=BodyKind.OPAQUE, value=raw, raw=raw)

    if mime == MULTIPART_FORM and params.get("boundary"):
        payload = data if data is not None else raw.encode(charset)
        fields = _decode_multipart(payload, params["boundary"], charset)
        if fields is None:
            return DecodedBody(kind=BodyKind.OPAQUE, value=raw, raw=raw)
        return DecodedBody(
            kind=BodyKind.FORM,
            value=fields,
            raw=raw,
            charset=charset,
            as_bytes=as_bytes,
            boundary=params["boundary"],
        )

    if data is not None:
        try:
            text = data.decode(charset)
        except (UnicodeDecodeError, LookupError):
            return DecodedBody(kind=BodyKind.OPAQUE, value=raw, raw=raw)
    else:
        text = raw

    if mime == FORM_URLENCODED:
        # Last value wins for repeated field names.
        fields = dict(parse_qsl(text, keep_blank_values=True))
        return DecodedBody(
            kind=BodyKind.FORM,
            value=fields,
            raw=raw,
            charset=charset,
            as_bytes=as_bytes,
        )

    return DecodedBody(
        kind=BodyKind.TEXT,
        value=decode_text(text),
        raw=raw,
        charset=charset,
        as_bytes=as_bytes,
    )


def parse_content_type(content_type: Optional[str]) -> Tuple[str, Dict[str, str]]:
    if not content_type:
        return "", {}
    mime, _, rest = content_type.partition(";")
    params: Dict[str, str] = {}
    for item in rest.split(";"):
        key, sep, value = item.strip().partition("=")
        if sep:
            params[key.strip().lower()] = value.strip().strip('"')
    return mime.strip().lower(), params


def _decode_multipart(
    data: bytes, boundary: str, charset: str
) -> Optional[Dict[str, str]]:
    header = f'Content-Type: {MULTIPART_FORM}; boundary="{boundary}"\r\n\r\n'
    message = email.message_from_bytes(
        header.encode("ascii") + data, policy=email.policy.HTTP
    )
    if not message.is_multipart():
        return None

    fields: Dict[str, str] = {}
    for part in message.iter_parts():
        name = part.get_param("name", header="content-disposition")
        if name is None or part.get_filename() is not None:
            return None
        payload = part.get_payload(decode=True) or b""
        part_charset = part.get_content_charset() or charset
        try:
            fields[str(name)] = payload.decode(part_charset)
        except (UnicodeDecodeError, LookupError):
            return None
    return fields


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def encode(value: Any, body: DecodedBody) -> Any:
    """Serialize ``value`` back into the wire form described by ``body``."""

    if body.kind is BodyKind.FORM and isinstance(value, Mapping):
        if body.boundary:
            return _encode_multipart(value, body.boundary, body.charset)
        wire: Any = urlencode({str(k): _form_value(v) for k, v in value.items()})
    elif isinstance(value, (bytes, bytearray)):
        return bytes(value)
    elif isinstance(value, str):
        wire = value
    else:
        wire = json.dumps(value, separators=(",", ":"), ensure_ascii=False)

    if body.as_bytes or body.kind in (BodyKind.EMPTY, BodyKind.OPAQUE):
        return wire.encode(body.charset)
    return wire


def _form_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def _encode_multipart(fields: Mapping[str, Any], boundary: str, charset: str) -> bytes:
    lines = []
    for name, value in fields.items():
        lines.append(f"--{boundary}")
        lines.append(f'Content-Disposition: form-data; name="{name}"')
        lines.append("")
        lines.append(_form_value(value))
    lines.append(f"--{boundary}--")
    lines.append("")
    return "\r\n".join(lines).encode(charset)
