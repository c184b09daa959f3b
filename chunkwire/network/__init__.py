"""
Channels, negotiation and transfer sessions.
"""

from .channel import DataChannel, LoopbackChannel
from .negotiator import ConnectionParams, Negotiator, LoopbackNegotiator
from .session import TransferSession, SessionState, SessionEvent
from .websocket import WebSocketChannel, WebSocketNegotiator

__all__ = [
    "DataChannel",
    "LoopbackChannel",
    "ConnectionParams",
    "Negotiator",
    "LoopbackNegotiator",
    "TransferSession",
    "SessionState",
    "SessionEvent",
    "WebSocketChannel",
    "WebSocketNegotiator",
]
