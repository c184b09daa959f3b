"""
WebSocket transport for transfer sessions.

This module provides:
- WebSocketChannel: DataChannel over a websockets connection
- WebSocketNegotiator: dials a URL, or adopts an accepted connection
"""

import asyncio
import logging
from typing import Any, Optional

import websockets
from websockets.asyncio.client import connect

from ..config import DEFAULT_MAX_MESSAGE_SIZE
from .channel import DEFAULT_HIGH_WATER_MARK, DataChannel, message_size
from .negotiator import ConnectionParams, Negotiator, StartParams

logger = logging.getLogger(__name__)


class WebSocketChannel(DataChannel):
    """
    DataChannel backed by a WebSocket connection.

    try_send() never blocks: accepted messages go to an outbox written in
    order by a background task. The channel refuses new messages while the
    outbox plus the transport's write buffer exceed the high-water mark.
    """

    def __init__(
        self,
        websocket: Any,
        label: str = "websocket",
        max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
        high_water_mark: int = DEFAULT_HIGH_WATER_MARK,
    ) -> None:
        super().__init__(label, max_message_size)
        self.websocket = websocket
        self.high_water_mark = high_water_mark

        self._outbox: asyncio.Queue = asyncio.Queue()
        self._outbox_bytes = 0
        self._tasks: list[asyncio.Task] = []

    @property
    def buffered_amount(self) -> int:
        """Bytes accepted but not yet flushed to the socket."""
        transport = getattr(self.websocket, "transport", None)
        pending = transport.get_write_buffer_size() if transport is not None else 0
        return self._outbox_bytes + pending

    def start(self) -> None:
        """Start the reader and writer tasks and signal ready."""
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._read_loop()),
            loop.create_task(self._write_loop()),
        ]
        self._mark_ready()

    def try_send(self, data: Any) -> bool:
        if not self.is_ready:
            return False
        if not isinstance(data, (bytes, bytearray, memoryview, str)):
            raise TypeError(f"WebSocket channels carry bytes or str, not {type(data).__name__}")
        if self.buffered_amount > self.high_water_mark:
            return False

        self._outbox_bytes += message_size(data)
        self._outbox.put_nowait(data)
        return True

    async def _read_loop(self) -> None:
        try:
            async for message in self.websocket:
                self._deliver(message)
        except websockets.exceptions.ConnectionClosed as e:
            logger.debug(f"Channel {self.label} connection lost: {e}")
        finally:
            self.close()

    async def _write_loop(self) -> None:
        try:
            while True:
                data = await self._outbox.get()
                try:
                    await self.websocket.send(data)
                finally:
                    self._outbox_bytes -= message_size(data)
                    self._outbox.task_done()
        except websockets.exceptions.ConnectionClosed as e:
            logger.debug(f"Channel {self.label} write failed: {e}")
            self.close()

    async def drain(self) -> None:
        """Wait until every accepted message was written to the socket."""
        if self._closed:
            return
        await self._outbox.join()

    def close(self) -> None:
        """Close the channel and its connection."""
        if self._closed:
            return
        self._mark_closed()

        current = asyncio.current_task() if self._tasks else None
        for task in self._tasks:
            if task is not current:
                task.cancel()
        self._tasks.clear()

        try:
            asyncio.get_running_loop().create_task(self.websocket.close())
        except RuntimeError:
            logger.debug(f"No running loop to close channel {self.label}")


class WebSocketNegotiator(Negotiator):
    """
    Negotiates a WebSocketChannel.

    The originating side passes a ``url`` to dial; the answering side
    passes the ``websocket`` its server accepted.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        websocket: Any = None,
        max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
        high_water_mark: int = DEFAULT_HIGH_WATER_MARK,
        open_timeout: float = 10.0,
    ) -> None:
        if (url is None) == (websocket is None):
            raise ValueError("Provide exactly one of url or websocket")

        super().__init__()
        self.url = url
        self.max_message_size = max_message_size
        self.high_water_mark = high_water_mark
        self.open_timeout = open_timeout

        self._websocket = websocket
        self._task: Optional[asyncio.Task] = None

    def start_connection(self, params: StartParams) -> None:
        self.params = params
        self._task = asyncio.get_running_loop().create_task(self._establish())

    async def _establish(self) -> None:
        websocket = self._websocket
        if websocket is None:
            try:
                websocket = await connect(
                    self.url,
                    max_size=None,
                    open_timeout=self.open_timeout,
                )
            except (
                OSError,
                TimeoutError,
                websockets.exceptions.InvalidHandshake,
                websockets.exceptions.InvalidURI,
            ) as e:
                self._failed(e)
                return
            logger.info(f"Connected to {self.url}")

        label = self.params.label if isinstance(self.params, ConnectionParams) else ""
        channel = WebSocketChannel(
            websocket,
            label=label or "websocket",
            max_message_size=self.max_message_size,
            high_water_mark=self.high_water_mark,
        )
        self._channel_ready(channel)
        channel.start()

    def close(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        super().close()
