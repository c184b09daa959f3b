"""
Data channel abstraction.

This module defines:
- DataChannel: the message-oriented, size-bounded transport a session
  runs on (ready/message/closed signals plus a non-blocking try_send)
- LoopbackChannel: an in-process channel pair for tests and demos
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from ..config import DEFAULT_MAX_MESSAGE_SIZE

logger = logging.getLogger(__name__)

DEFAULT_HIGH_WATER_MARK = 1024 * 1024  # 1MB of undelivered data

# Type aliases
ReadyHandler = Callable[[], None]
MessageHandler = Callable[[Any], None]
ClosedHandler = Callable[[], None]


def message_size(data: Any) -> int:
    """Size in bytes of a channel message (0 for non-binary values)."""
    if isinstance(data, (bytes, bytearray, memoryview)):
        return len(data)
    if isinstance(data, str):
        return len(data.encode())
    return 0


class DataChannel(ABC):
    """
    A bounded-size message channel to one peer.

    Handlers registered after the channel became ready (or closed) are
    called immediately.
    """

    def __init__(
        self,
        label: str = "",
        max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
    ) -> None:
        self.label = label
        self.max_message_size = max_message_size

        self._ready = False
        self._closed = False

        # Event handlers
        self._ready_handlers: list[ReadyHandler] = []
        self._message_handlers: list[MessageHandler] = []
        self._closed_handlers: list[ClosedHandler] = []

    @property
    def is_ready(self) -> bool:
        """Check if the channel accepts messages."""
        return self._ready and not self._closed

    @property
    def is_closed(self) -> bool:
        return self._closed

    def on_ready(self, handler: ReadyHandler) -> None:
        """Register a ready handler."""
        self._ready_handlers.append(handler)
        if self.is_ready:
            handler()

    def on_message(self, handler: MessageHandler) -> None:
        """Register a message handler."""
        self._message_handlers.append(handler)

    def on_closed(self, handler: ClosedHandler) -> None:
        """Register a close handler."""
        self._closed_handlers.append(handler)
        if self._closed:
            handler()

    def _mark_ready(self) -> None:
        if self._ready or self._closed:
            return
        self._ready = True
        logger.debug(f"Channel {self.label} ready")
        for handler in list(self._ready_handlers):
            handler()

    def _deliver(self, data: Any) -> None:
        if self._closed:
            return
        for handler in list(self._message_handlers):
            handler(data)

    def _mark_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._ready = False
        logger.debug(f"Channel {self.label} closed")
        for handler in list(self._closed_handlers):
            handler()

    @abstractmethod
    def try_send(self, data: Any) -> bool:
        """
        Hand one message to the channel without blocking.

        Returns:
            True if accepted, False if the channel is not ready or its
            buffer is above the high-water mark
        """

    def close(self) -> None:
        """Close the channel."""
        self._mark_closed()

    def __repr__(self) -> str:
        status = "closed" if self._closed else ("ready" if self._ready else "connecting")
        return f"{type(self).__name__}({self.label!r}, {status})"


class LoopbackChannel(DataChannel):
    """
    One end of an in-process channel pair.

    Messages are delivered to the other end on a later event loop
    iteration, in send order. Undelivered bytes count against the
    high-water mark.
    """

    def __init__(
        self,
        label: str = "loopback",
        max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
        high_water_mark: int = DEFAULT_HIGH_WATER_MARK,
    ) -> None:
        super().__init__(label, max_message_size)
        self.high_water_mark = high_water_mark
        self.buffered_amount = 0
        self._peer: Optional["LoopbackChannel"] = None

    @classmethod
    def pair(cls, **kwargs: Any) -> tuple["LoopbackChannel", "LoopbackChannel"]:
        """Create two linked ends."""
        a, b = cls(**kwargs), cls(**kwargs)
        a._peer, b._peer = b, a
        return a, b

    def open(self) -> None:
        """Mark both ends ready."""
        self._mark_ready()
        if self._peer is not None:
            self._peer._mark_ready()

    def try_send(self, data: Any) -> bool:
        if not self.is_ready or self._peer is None:
            return False

        if self.buffered_amount > self.high_water_mark:
            return False

        size = message_size(data)
        self.buffered_amount += size
        asyncio.get_running_loop().call_soon(self._transmit, data, size)
        return True

    def _transmit(self, data: Any, size: int) -> None:
        self.buffered_amount -= size
        if self._peer is not None:
            self._peer._deliver(data)

    def close(self) -> None:
        """Close this end; the other end closes on the next loop iteration."""
        if self._closed:
            return
        self._mark_closed()
        peer = self._peer
        if peer is not None and not peer.is_closed:
            try:
                asyncio.get_running_loop().call_soon(peer._mark_closed)
            except RuntimeError:
                peer._mark_closed()
