"""
Value serialization for transfer sessions.

This module provides:
- SerializationMode: the fixed encoding strategy of a session
- One serializer per mode (passthrough, JSON via orjson, MessagePack)
- Serialization statistics
"""

import logging
import unicodedata
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

import msgpack
import orjson
from pydantic import BaseModel, ConfigDict

from ..exceptions import ConfigurationError, SerializationError
from .payload import Blob, File

logger = logging.getLogger(__name__)

# MessagePack extension codes
EXT_BLOB = 1
EXT_FILE = 2


class SerializationMode(str, Enum):
    """How a session turns application values into channel messages."""

    BINARY = "binary"
    BINARY_UTF8 = "binary-utf8"
    JSON = "json"
    NONE = "none"

    @classmethod
    def parse(cls, value: "str | SerializationMode") -> "SerializationMode":
        """
        Parse a configured mode.

        Raises:
            ConfigurationError: If the value names no known mode
        """
        try:
            return cls(value)
        except ValueError:
            choices = ", ".join(m.value for m in cls)
            raise ConfigurationError(
                f"Invalid serialization {value!r} (expected one of: {choices})",
                option="serialization",
            ) from None

    @property
    def is_chunked(self) -> bool:
        """Binary modes go through the chunker; the others are sent whole."""
        return self in (SerializationMode.BINARY, SerializationMode.BINARY_UTF8)


class SerializationStats(BaseModel):
    """Statistics for serialization performance."""

    calls: int = 0
    bytes_total: int = 0
    avg_size: float = 0.0

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def record(self, size: int) -> None:
        """Record a serialization operation."""
        self.calls += 1
        self.bytes_total += size
        self.avg_size = self.bytes_total / self.calls


# Global serialization stats
_encode_stats = SerializationStats()
_decode_stats = SerializationStats()


class Serializer(ABC):
    """Encodes application values for one serialization mode."""

    mode: SerializationMode

    @abstractmethod
    def encode(self, value: Any) -> Any:
        """Convert a value to its transportable form."""

    @abstractmethod
    def decode(self, data: Any) -> Any:
        """Inverse of encode."""


class PassthroughSerializer(Serializer):
    """Mode ``none``: the channel carries values natively."""

    mode = SerializationMode.NONE

    def encode(self, value: Any) -> Any:
        return value

    def decode(self, data: Any) -> Any:
        return data


def _json_default(obj: Any) -> Any:
    if isinstance(obj, BaseModel):
        return obj.model_dump()
    raise TypeError(f"Type is not JSON serializable: {type(obj).__name__}")


class JsonSerializer(Serializer):
    """Mode ``json``: values travel as JSON text."""

    mode = SerializationMode.JSON

    def encode(self, value: Any) -> str:
        try:
            data = orjson.dumps(value, default=_json_default)
        except (TypeError, orjson.JSONEncodeError) as e:
            raise SerializationError(f"Cannot encode value as JSON: {e}", self.mode.value) from e
        _encode_stats.record(len(data))
        return data.decode()

    def decode(self, data: str | bytes) -> Any:
        if isinstance(data, str):
            data = data.encode()
        try:
            value = orjson.loads(data)
        except (TypeError, orjson.JSONDecodeError) as e:
            raise SerializationError(f"Malformed JSON message: {e}", self.mode.value) from e
        _decode_stats.record(len(data))
        return value


class BinarySerializer(Serializer):
    """
    Mode ``binary``: MessagePack.

    Carries nested maps and lists, raw bytes, and Blob/File values
    (as extension types). Pydantic models are packed via model_dump().
    """

    mode = SerializationMode.BINARY

    def encode(self, value: Any) -> bytes:
        try:
            data = msgpack.packb(
                self._prepare(value),
                use_bin_type=True,
                default=self._default,
            )
        except (TypeError, ValueError, OverflowError, RecursionError) as e:
            raise SerializationError(f"Cannot pack value: {e}", self.mode.value) from e
        _encode_stats.record(len(data))
        return data

    def decode(self, data: bytes) -> Any:
        try:
            value = msgpack.unpackb(
                data,
                raw=False,
                ext_hook=self._ext_hook,
                strict_map_key=False,
            )
        except (TypeError, ValueError, OverflowError) as e:
            raise SerializationError(f"Cannot unpack payload: {e}", self.mode.value) from e
        _decode_stats.record(len(data))
        return value

    def _prepare(self, value: Any) -> Any:
        return value

    def _default(self, obj: Any) -> Any:
        if isinstance(obj, File):
            body = msgpack.packb([obj.data, obj.mime_type, obj.name], use_bin_type=True)
            return msgpack.ExtType(EXT_FILE, body)
        if isinstance(obj, Blob):
            body = msgpack.packb([obj.data, obj.mime_type], use_bin_type=True)
            return msgpack.ExtType(EXT_BLOB, body)
        if isinstance(obj, BaseModel):
            return obj.model_dump()
        raise TypeError(f"Cannot serialize {type(obj).__name__}")

    @staticmethod
    def _ext_hook(code: int, body: bytes) -> Any:
        if code == EXT_FILE:
            data, mime_type, name = msgpack.unpackb(body, raw=False)
            return File(data=data, mime_type=mime_type, name=name)
        if code == EXT_BLOB:
            data, mime_type = msgpack.unpackb(body, raw=False)
            return Blob(data=data, mime_type=mime_type)
        return msgpack.ExtType(code, body)


class BinaryUtf8Serializer(BinarySerializer):
    """Mode ``binary-utf8``: MessagePack with every text field NFC-normalized."""

    mode = SerializationMode.BINARY_UTF8

    def _prepare(self, value: Any) -> Any:
        return normalize_text(value)


def normalize_text(value: Any) -> Any:
    """Recursively NFC-normalize strings, map keys and file metadata."""
    if isinstance(value, str):
        return unicodedata.normalize("NFC", value)
    if isinstance(value, dict):
        return {normalize_text(k): normalize_text(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_text(v) for v in value]
    if isinstance(value, File):
        return value.model_copy(update={
            "name": normalize_text(value.name),
            "mime_type": normalize_text(value.mime_type),
        })
    if isinstance(value, Blob):
        return value.model_copy(update={"mime_type": normalize_text(value.mime_type)})
    if isinstance(value, BaseModel):
        return normalize_text(value.model_dump())
    return value


_SERIALIZERS: dict[SerializationMode, type[Serializer]] = {
    SerializationMode.NONE: PassthroughSerializer,
    SerializationMode.JSON: JsonSerializer,
    SerializationMode.BINARY: BinarySerializer,
    SerializationMode.BINARY_UTF8: BinaryUtf8Serializer,
}


def get_serializer(mode: "str | SerializationMode") -> Serializer:
    """Select the serializer for a mode (raises ConfigurationError if unknown)."""
    return _SERIALIZERS[SerializationMode.parse(mode)]()


def encode(value: Any, mode: "str | SerializationMode") -> Any:
    """Encode a value under the given mode."""
    return get_serializer(mode).encode(value)


def decode(data: Any, mode: "str | SerializationMode") -> Any:
    """Decode transported data under the given mode."""
    return get_serializer(mode).decode(data)


def serialization_stats() -> dict:
    """Get serialization statistics."""
    return {
        "encode": {
            "calls": _encode_stats.calls,
            "bytes_total": _encode_stats.bytes_total,
            "avg_size": _encode_stats.avg_size,
        },
        "decode": {
            "calls": _decode_stats.calls,
            "bytes_total": _decode_stats.bytes_total,
            "avg_size": _decode_stats.avg_size,
        },
    }
