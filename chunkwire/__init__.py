"""
Chunkwire - arbitrarily large values over size-limited data channels.

Chunkwire serializes application values, splits oversized payloads into
chunks that fit the channel's message bound, paces them onto the channel
and reassembles them on the other side.

Quick Start:
    from chunkwire import TransferSession, LoopbackNegotiator

    left, right = LoopbackNegotiator.pair()
    alice = TransferSession("bob", left)
    bob = TransferSession("alice", right)

    bob.on("data", print)
    alice.send({"report": b"..." * 100_000})

Features:
    - Serialization modes: binary, binary-utf8, json, none
    - Chunking with per-chunk metadata, reassembly in any order
    - Paced send queue that retries without reordering
    - Loopback and WebSocket channels
"""

from .config import SessionConfig
from .core.payload import Blob, File
from .core.serialization import SerializationMode
from .network.negotiator import ConnectionParams, Negotiator, LoopbackNegotiator
from .network.session import TransferSession, SessionState, SessionEvent
from .network.websocket import WebSocketNegotiator
from .exceptions import (
    ChunkwireError,
    ConfigurationError,
    SerializationError,
    ChunkSizeError,
    MalformedChunkError,
    SendNotOpenError,
    ChannelError,
)

__version__ = "0.1.0"

__all__ = [
    # Core
    "TransferSession",
    "SessionState",
    "SessionEvent",
    "SessionConfig",
    "SerializationMode",
    "Blob",
    "File",
    # Negotiation
    "ConnectionParams",
    "Negotiator",
    "LoopbackNegotiator",
    "WebSocketNegotiator",
    # Exceptions
    "ChunkwireError",
    "ConfigurationError",
    "SerializationError",
    "ChunkSizeError",
    "MalformedChunkError",
    "SendNotOpenError",
    "ChannelError",
    # Version
    "__version__",
]
