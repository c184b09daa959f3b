"""
Channel negotiation interface.

A Negotiator performs whatever signaling is needed to obtain a data
channel and announces it through channel-ready handlers. Sessions only
call start_connection() and listen; the signaling itself lives in the
concrete negotiators.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from pydantic import BaseModel, ConfigDict
from typing import Any, Callable, Optional, Union

from .channel import DataChannel, LoopbackChannel

logger = logging.getLogger(__name__)


class ConnectionParams(BaseModel):
    """Parameters for establishing a channel as the originating side."""

    originator: bool = True
    kind: str = "data"
    label: str = ""

    model_config = ConfigDict(arbitrary_types_allowed=True)


# Either our own parameters or an opaque offer received from the remote
StartParams = Union[ConnectionParams, dict[str, Any]]

ChannelReadyHandler = Callable[[DataChannel], None]
FailureHandler = Callable[[Exception], None]


class Negotiator(ABC):
    """Produces one data channel for one session."""

    def __init__(self) -> None:
        self.params: Optional[StartParams] = None
        self._channel: Optional[DataChannel] = None
        self._ready_handlers: list[ChannelReadyHandler] = []
        self._failure_handlers: list[FailureHandler] = []

    @property
    def channel(self) -> Optional[DataChannel]:
        """The negotiated channel, once ready."""
        return self._channel

    def on_channel_ready(self, handler: ChannelReadyHandler) -> None:
        """Register a channel-ready handler."""
        self._ready_handlers.append(handler)
        if self._channel is not None:
            handler(self._channel)

    def on_failure(self, handler: FailureHandler) -> None:
        """Register a handler for failed establishment."""
        self._failure_handlers.append(handler)

    def _channel_ready(self, channel: DataChannel) -> None:
        self._channel = channel
        for handler in list(self._ready_handlers):
            handler(channel)

    def _failed(self, error: Exception) -> None:
        logger.error(f"Channel establishment failed: {error}")
        for handler in list(self._failure_handlers):
            handler(error)

    @abstractmethod
    def start_connection(self, params: StartParams) -> None:
        """Begin channel establishment."""

    def close(self) -> None:
        """Tear down the negotiated channel."""
        if self._channel is not None:
            self._channel.close()


class LoopbackNegotiator(Negotiator):
    """
    Negotiates one end of an in-process LoopbackChannel pair.

    The channel pair opens once both sides have started (on the next loop
    iteration), or only when open() is called if auto_open is False.
    """

    def __init__(self, channel: LoopbackChannel, auto_open: bool = True) -> None:
        super().__init__()
        self._local = channel
        self.auto_open = auto_open
        self._remote: Optional["LoopbackNegotiator"] = None

    @classmethod
    def pair(
        cls,
        auto_open: bool = True,
        **channel_options: Any,
    ) -> tuple["LoopbackNegotiator", "LoopbackNegotiator"]:
        """Create two negotiators for the two ends of a new channel pair."""
        a_channel, b_channel = LoopbackChannel.pair(**channel_options)
        a, b = cls(a_channel, auto_open), cls(b_channel, auto_open)
        a._remote, b._remote = b, a
        return a, b

    @property
    def started(self) -> bool:
        return self.params is not None

    def start_connection(self, params: StartParams) -> None:
        self.params = params
        if isinstance(params, ConnectionParams) and params.label:
            self._local.label = params.label

        self._channel_ready(self._local)

        if self.auto_open and self._remote is not None and self._remote.started:
            asyncio.get_running_loop().call_soon(self.open)

    def open(self) -> None:
        """Signal ready on both ends of the pair."""
        self._local.open()
