"""
Core value handling: serialization modes, payload descriptors and the
chunk envelope wire format.
"""

from .serialization import (
    SerializationMode,
    Serializer,
    PassthroughSerializer,
    JsonSerializer,
    BinarySerializer,
    BinaryUtf8Serializer,
    get_serializer,
    encode,
    decode,
    serialization_stats,
)

from .payload import (
    Blob,
    File,
    PayloadKind,
    PayloadDescriptor,
    describe_payload,
)

from .envelope import (
    ChunkEnvelope,
    pack_envelope,
    unpack_envelope,
    metadata_overhead,
)

__all__ = [
    # Serialization
    "SerializationMode",
    "Serializer",
    "PassthroughSerializer",
    "JsonSerializer",
    "BinarySerializer",
    "BinaryUtf8Serializer",
    "get_serializer",
    "encode",
    "decode",
    "serialization_stats",
    # Payloads
    "Blob",
    "File",
    "PayloadKind",
    "PayloadDescriptor",
    "describe_payload",
    # Envelopes
    "ChunkEnvelope",
    "pack_envelope",
    "unpack_envelope",
    "metadata_overhead",
]
