"""
Chunk envelope wire format.

Every chunk of a transfer repeats the same metadata (id, type, size,
totalParts, name, mimeType); only index and data vary. Envelopes are
MessagePack maps keyed by the camelCase wire names below. Optional fields
are omitted from the map when unset.
"""

from pydantic import BaseModel, ConfigDict, ValidationError
from typing import Any, Optional

import msgpack

from ..exceptions import MalformedChunkError

# Widest values MessagePack encodes in 5 bytes
MAX_TOTAL_PARTS = 0xFFFFFFFF

# bin 8 header is 2 bytes, bin 32 is 5
_DATA_HEADER_GROWTH = 3

_REQUIRED_KEYS = ("id", "type", "size", "totalParts")


class ChunkEnvelope(BaseModel):
    """One wire unit of a chunked transfer."""

    id: str
    type: str
    size: int
    total_parts: int
    index: Optional[int] = None
    name: Optional[str] = None
    mime_type: Optional[str] = None
    data: Optional[bytes] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire map, dropping unset optional fields."""
        result: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "size": self.size,
            "totalParts": self.total_parts,
        }

        if self.index is not None:
            result["index"] = self.index
        if self.name is not None:
            result["name"] = self.name
        if self.mime_type is not None:
            result["mimeType"] = self.mime_type
        if self.data is not None:
            result["data"] = self.data

        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChunkEnvelope":
        """Create from a wire map."""
        return cls(
            id=data["id"],
            type=data["type"],
            size=data["size"],
            total_parts=data["totalParts"],
            index=data.get("index"),
            name=data.get("name"),
            mime_type=data.get("mimeType"),
            data=data.get("data"),
        )

    def metadata(self) -> "ChunkEnvelope":
        """Copy of this envelope without index and data."""
        return self.model_copy(update={"index": None, "data": None})

    def __repr__(self) -> str:
        id_short = f"{self.id[:8]}..." if len(self.id) > 8 else self.id
        length = len(self.data) if self.data is not None else 0
        return (
            f"ChunkEnvelope({id_short}, {self.index}/{self.total_parts}, "
            f"{length} of {self.size} bytes)"
        )


def pack_envelope(envelope: ChunkEnvelope) -> bytes:
    """Serialize an envelope for the channel."""
    return msgpack.packb(envelope.to_dict(), use_bin_type=True)


def unpack_envelope(data: bytes) -> ChunkEnvelope:
    """
    Parse an envelope received from the channel.

    Raises:
        MalformedChunkError: If the bytes are not a valid envelope
    """
    try:
        raw = msgpack.unpackb(data, raw=False)
    except (TypeError, ValueError) as e:
        raise MalformedChunkError(f"Undecodable chunk: {e}") from e

    if not isinstance(raw, dict):
        raise MalformedChunkError(f"Chunk is a {type(raw).__name__}, expected a map")

    missing = [key for key in _REQUIRED_KEYS if key not in raw]
    if missing:
        raise MalformedChunkError(
            f"Chunk missing fields: {', '.join(missing)}",
            transfer_id=raw.get("id") if isinstance(raw.get("id"), str) else None,
        )

    try:
        return ChunkEnvelope.from_dict(raw)
    except ValidationError as e:
        raise MalformedChunkError(f"Invalid chunk fields: {e}", transfer_id=str(raw["id"])) from e


def metadata_overhead(metadata: ChunkEnvelope) -> int:
    """
    Bytes a chunk spends on everything except its payload slice.

    Counts the packed metadata plus the widest possible index, part count
    and data header, so a chunk built on this figure never exceeds the
    channel's message bound.
    """
    framing = metadata.model_copy(update={
        "total_parts": MAX_TOTAL_PARTS,
        "index": MAX_TOTAL_PARTS,
        "data": b"",
    })
    return len(pack_envelope(framing)) + _DATA_HEADER_GROWTH
