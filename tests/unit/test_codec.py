import io
import json
from urllib.parse import parse_qsl

from api_logger.codec import (
    BodyKind,
    decode,
    decode_text,
    encode,
    parse_content_type,
)


class TestDecodeText:
    def test_json_object(self):
        assert decode_text('{"a": 1, "b": [1, 2]}') == {"a": 1, "b": [1, 2]}

    def test_plain_text_passes_through(self):
        assert decode_text("hello, not json") == "hello, not json"

    def test_malformed_json_passes_through(self):
        assert decode_text('{"a": ') == '{"a": '

    def test_empty_is_none(self):
        assert decode_text("") is None
        assert decode_text(None) is None

    def test_deeply_nested_json_falls_back_to_text(self):
        text = "[" * 100000 + "]" * 100000
        assert decode_text(text) == text


class TestDecode:
    def test_absent_body(self):
        body = decode(None)
        assert body.kind is BodyKind.EMPTY
        assert body.value is None
        assert decode(b"").is_empty

    def test_json_string(self):
        body = decode('{"a":1}', "application/json")
        assert body.kind is BodyKind.TEXT
        assert body.value == {"a": 1}
        assert body.as_bytes is False

    def test_json_bytes_without_content_type(self):
        body = decode(b'{"a": [1, 2]}')
        assert body.kind is BodyKind.TEXT
        assert body.value == {"a": [1, 2]}
        assert body.as_bytes is True

    def test_plain_text_unchanged(self):
        body = decode("just some words", "text/plain")
        assert body.kind is BodyKind.TEXT
        assert body.value == "just some words"

    def test_deeply_nested_json_body_is_text(self):
        raw = b"[" * 100000 + b"]" * 100000
        body = decode(raw, "application/json")
        assert body.kind is BodyKind.TEXT
        assert body.value == raw.decode("ascii")

    def test_urlencoded_form_last_value_wins(self):
        body = decode("name=ada&tag=a&tag=b&empty=", "application/x-www-form-urlencoded")
        assert body.kind is BodyKind.FORM
        assert body.value == {"name": "ada", "tag": "b", "empty": ""}

    def test_urlencoded_form_charset_param(self):
        body = decode(
            "city=M%C3%BCnchen".encode(),
            "application/x-www-form-urlencoded; charset=utf-8",
        )
        assert body.value == {"city": "München"}
        assert body.as_bytes is True

    def test_multipart_text_fields(self):
        raw = (
            b"--XyZ\r\n"
            b'Content-Disposition: form-data; name="email"\r\n\r\n'
            b"ada@example.com\r\n"
            b"--XyZ\r\n"
            b'Content-Disposition: form-data; name="plan"\r\n\r\n'
            b"pro\r\n"
            b"--XyZ--\r\n"
        )
        body = decode(raw, "multipart/form-data; boundary=XyZ")
        assert body.kind is BodyKind.FORM
        assert body.boundary == "XyZ"
        assert body.value == {"email": "ada@example.com", "plan": "pro"}

    def test_multipart_with_file_is_opaque(self):
        raw = (
            b"--XyZ\r\n"
            b'Content-Disposition: form-data; name="upload"; filename="a.bin"\r\n'
            b"Content-Type: application/octet-stream\r\n\r\n"
            b"\x00\x01\x02\r\n"
            b"--XyZ--\r\n"
        )
        body = decode(raw, "multipart/form-data; boundary=XyZ")
        assert body.kind is BodyKind.OPAQUE
        assert body.value == raw

    def test_undecodable_bytes_are_opaque(self):
        raw = b"\xff\xfe\x00binary"
        body = decode(raw, "application/octet-stream")
        assert body.kind is BodyKind.OPAQUE
        assert body.value == raw

    def test_stream_is_opaque(self):
        stream = io.BytesIO(b"chunked")
        body = decode(stream)
        assert body.kind is BodyKind.OPAQUE
        assert body.value is stream


class TestEncode:
    def test_structured_value_into_text_string(self):
        original = decode('{"a":1}', "application/json")
        assert encode({"a": 1, "source": "website"}, original) == '{"a":1,"source":"website"}'

    def test_structured_value_into_text_bytes(self):
        original = decode(b'{"a": 1}', "application/json")
        wire = encode({"a": 2}, original)
        assert isinstance(wire, bytes)
        assert json.loads(wire) == {"a": 2}

    def test_string_replacement_is_not_quoted(self):
        original = decode("hello", "text/plain")
        assert encode("goodbye", original) == "goodbye"

    def test_unmodified_form_round_trips(self):
        original = decode("a=1&b=two+words", "application/x-www-form-urlencoded")
        wire = encode(original.value, original)
        assert dict(parse_qsl(wire)) == {"a": "1", "b": "two words"}

    def test_form_values_are_stringified(self):
        original = decode("a=1", "application/x-www-form-urlencoded")
        wire = encode({"a": 1, "flag": True, "none": None}, original)
        assert dict(parse_qsl(wire)) == {"a": "1", "flag": "true", "none": "null"}

    def test_multipart_rebuilt_with_original_boundary(self):
        raw = (
            b"--XyZ\r\n"
            b'Content-Disposition: form-data; name="email"\r\n\r\n'
            b"ada@example.com\r\n"
            b"--XyZ--\r\n"
        )
        original = decode(raw, "multipart/form-data; boundary=XyZ")
        wire = encode({"email": "ada@example.com", "source": "website"}, original)

        reparsed = decode(wire, "multipart/form-data; boundary=XyZ")
        assert reparsed.value == {"email": "ada@example.com", "source": "website"}

    def test_opaque_accepts_bytes(self):
        original = decode(b"\xff\xfe", "application/octet-stream")
        assert encode(b"\x01\x02", original) == b"\x01\x02"

    def test_opaque_serializes_structured_value(self):
        original = decode(io.BytesIO(b"x"))
        assert encode({"k": "v"}, original) == b'{"k":"v"}'


class TestParseContentType:
    def test_params(self):
        mime, params = parse_content_type('Multipart/Form-Data; boundary="abc"; charset=UTF-8')
        assert mime == "multipart/form-data"
        assert params == {"boundary": "abc", "charset": "UTF-8"}

    def test_missing(self):
        assert parse_content_type(None) == ("", {})
