"""
Tests for serialization modes and payload descriptors.
"""

import unicodedata

import pytest
from pydantic import BaseModel

from chunkwire.core.payload import (
    Blob,
    File,
    PayloadKind,
    describe_payload,
    detect_mime_type,
)
from chunkwire.core.serialization import (
    SerializationMode,
    PassthroughSerializer,
    JsonSerializer,
    BinarySerializer,
    BinaryUtf8Serializer,
    get_serializer,
    encode,
    decode,
    serialization_stats,
)
from chunkwire.exceptions import ConfigurationError, SerializationError


class Point(BaseModel):
    x: int
    y: int


class TestSerializationMode:
    """Tests for SerializationMode parsing."""

    def test_parse_known_modes(self):
        """All four modes parse from their names."""
        assert SerializationMode.parse("binary") is SerializationMode.BINARY
        assert SerializationMode.parse("binary-utf8") is SerializationMode.BINARY_UTF8
        assert SerializationMode.parse("json") is SerializationMode.JSON
        assert SerializationMode.parse("none") is SerializationMode.NONE

    def test_parse_unknown_mode(self):
        """Unknown modes are configuration errors."""
        with pytest.raises(ConfigurationError, match="Invalid serialization") as exc_info:
            SerializationMode.parse("xml")

        assert exc_info.value.code == "CONFIGURATION_ERROR"
        assert exc_info.value.option == "serialization"

    def test_is_chunked(self):
        """Only binary modes chunk."""
        assert SerializationMode.BINARY.is_chunked
        assert SerializationMode.BINARY_UTF8.is_chunked
        assert not SerializationMode.JSON.is_chunked
        assert not SerializationMode.NONE.is_chunked

    def test_get_serializer(self):
        """Each mode selects its serializer."""
        assert isinstance(get_serializer("none"), PassthroughSerializer)
        assert isinstance(get_serializer("json"), JsonSerializer)
        assert isinstance(get_serializer("binary"), BinarySerializer)
        assert isinstance(get_serializer(SerializationMode.BINARY_UTF8), BinaryUtf8Serializer)

    def test_get_serializer_unknown(self):
        """Unknown mode cannot select a serializer."""
        with pytest.raises(ConfigurationError):
            get_serializer("yaml")


class TestPassthrough:
    """Tests for mode none."""

    def test_identity(self):
        """Values pass through without copying."""
        value = {"key": [1, 2, 3]}

        assert encode(value, "none") is value
        assert decode(value, "none") is value


class TestJson:
    """Tests for mode json."""

    def test_encode_is_text(self):
        """JSON mode produces text."""
        result = encode({"key": "value"}, "json")

        assert isinstance(result, str)
        assert '"key"' in result

    def test_roundtrip(self):
        """Serialize and deserialize."""
        original = {"nested": {"list": [1, 2, 3]}, "bool": True, "none": None}

        assert decode(encode(original, "json"), "json") == original

    def test_decode_bytes(self):
        """Decoding accepts bytes as well as text."""
        assert decode(b'{"a": 1}', "json") == {"a": 1}

    def test_pydantic_model(self):
        """Models are encoded as their field dict."""
        assert decode(encode(Point(x=1, y=2), "json"), "json") == {"x": 1, "y": 2}

    def test_unrepresentable_value(self):
        """Values JSON cannot express fail with SerializationError."""
        with pytest.raises(SerializationError) as exc_info:
            encode({"raw": object()}, "json")

        assert exc_info.value.mode == "json"

    def test_malformed_text(self):
        """Malformed text fails with SerializationError."""
        with pytest.raises(SerializationError, match="Malformed JSON"):
            decode("{not json", "json")


class TestBinary:
    """Tests for mode binary."""

    def test_encode_is_bytes(self):
        """Binary mode produces bytes."""
        assert isinstance(encode({"a": 1}, "binary"), bytes)

    @pytest.mark.parametrize("value", [
        b"",
        b"\x00\xff" * 5000,
        "text",
        12345,
        -1.5,
        True,
        None,
        [1, "two", b"three"],
        {"nested": {"bytes": b"\x01\x02", "list": [None, 1.0]}},
        {1: "int keys"},
    ])
    def test_roundtrip(self, value):
        """Structured values and raw bytes survive a round trip."""
        assert decode(encode(value, "binary"), "binary") == value

    def test_blob_roundtrip(self):
        """Blobs decode back to Blobs."""
        blob = Blob(data=b"\x89PNG", mime_type="image/png")

        result = decode(encode(blob, "binary"), "binary")

        assert isinstance(result, Blob)
        assert not isinstance(result, File)
        assert result.data == b"\x89PNG"
        assert result.mime_type == "image/png"

    def test_file_roundtrip(self):
        """Files keep their name and content type."""
        file = File(data=b"hello", name="hello.txt", mime_type="text/plain")

        result = decode(encode({"attachment": file}, "binary"), "binary")

        assert result["attachment"] == file

    def test_pydantic_model(self):
        """Models are packed as their field dict."""
        assert decode(encode(Point(x=3, y=4), "binary"), "binary") == {"x": 3, "y": 4}

    def test_unsupported_type(self):
        """Unpackable values fail with SerializationError."""
        with pytest.raises(SerializationError, match="Cannot pack"):
            encode({1, 2, 3}, "binary")

    def test_truncated_payload(self):
        """Truncated bytes fail with SerializationError."""
        packed = encode({"key": "value" * 10}, "binary")

        with pytest.raises(SerializationError, match="Cannot unpack"):
            decode(packed[:-5], "binary")


class TestBinaryUtf8:
    """Tests for mode binary-utf8."""

    def test_normalizes_text(self):
        """Strings and keys are NFC-normalized."""
        decomposed = unicodedata.normalize("NFD", "café")
        value = {decomposed: [decomposed]}

        result = decode(encode(value, "binary-utf8"), "binary-utf8")

        composed = unicodedata.normalize("NFC", "café")
        assert result == {composed: [composed]}

    def test_normalizes_file_name(self):
        """File names are normalized, data is untouched."""
        name = unicodedata.normalize("NFD", "résumé.pdf")
        file = File(data=b"%PDF", name=name, mime_type="application/pdf")

        result = decode(encode(file, "binary-utf8"), "binary-utf8")

        assert result.name == unicodedata.normalize("NFC", name)
        assert result.data == b"%PDF"

    def test_bytes_untouched(self):
        """Binary fields are not normalized."""
        raw = "é".encode("utf-8") + b"\xff"

        assert decode(encode({"raw": raw}, "binary-utf8"), "binary-utf8") == {"raw": raw}

    def test_binary_reads_utf8_output(self):
        """Both binary modes share one wire format."""
        assert decode(encode(["a", b"b"], "binary-utf8"), "binary") == ["a", b"b"]

    def test_cyclic_value(self):
        """Self-referencing values fail as SerializationError."""
        value = ["x"]
        value.append(value)

        with pytest.raises(SerializationError) as exc_info:
            BinaryUtf8Serializer().encode(value)

        assert exc_info.value.mode == "binary-utf8"


class TestPayloadDescriptor:
    """Tests for describe_payload."""

    def test_plain(self):
        """Ordinary values carry only their type name."""
        descriptor = describe_payload({"a": 1})

        assert descriptor.kind == PayloadKind.PLAIN
        assert descriptor.type_name == "dict"
        assert descriptor.name is None
        assert descriptor.mime_type is None

    def test_blob(self):
        """Blobs carry their content type."""
        descriptor = describe_payload(Blob(data=b"x", mime_type="image/gif"))

        assert descriptor.kind == PayloadKind.TYPED
        assert descriptor.type_name == "Blob"
        assert descriptor.mime_type == "image/gif"
        assert descriptor.name is None

    def test_file(self):
        """Files carry name and content type."""
        descriptor = describe_payload(File(data=b"x", name="a.txt", mime_type="text/plain"))

        assert descriptor.kind == PayloadKind.NAMED
        assert descriptor.type_name == "File"
        assert descriptor.name == "a.txt"
        assert descriptor.mime_type == "text/plain"


class TestFile:
    """Tests for File helpers."""

    def test_from_path(self, tmp_path):
        """Load a file with a guessed MIME type."""
        path = tmp_path / "notes.txt"
        path.write_bytes(b"some notes")

        file = File.from_path(path)

        assert file.name == "notes.txt"
        assert file.data == b"some notes"
        assert file.mime_type == "text/plain"
        assert file.size == 10

    def test_save_strips_directories(self, tmp_path):
        """Saving ignores directory components of the name."""
        file = File(data=b"data", name="../../escape.bin")

        target = file.save(tmp_path)

        assert target == tmp_path / "escape.bin"
        assert target.read_bytes() == b"data"

    def test_unknown_extension(self, tmp_path):
        """Unknown extensions fall back to octet-stream."""
        assert detect_mime_type(tmp_path / "blob.unknownext") == "application/octet-stream"


class TestStats:
    """Tests for serialization statistics."""

    def test_stats_recorded(self):
        """Encoding and decoding are counted."""
        before = serialization_stats()

        decode(encode({"key": "value"}, "binary"), "binary")

        after = serialization_stats()
        assert after["encode"]["calls"] == before["encode"]["calls"] + 1
        assert after["decode"]["calls"] == before["decode"]["calls"] + 1
        assert after["encode"]["bytes_total"] > before["encode"]["bytes_total"]
