"""
Transfer sessions over a data channel.

This module provides:
- TransferSession: send/receive arbitrary values to one peer over one
  negotiated channel, chunking binary payloads to fit the channel
- SessionState / SessionEvent enums
"""

import asyncio
import inspect
import logging
import uuid
from collections import deque
from enum import Enum, auto
from typing import Any, Callable, Optional

from ..config import SessionConfig
from ..core.envelope import pack_envelope, unpack_envelope
from ..core.serialization import SerializationMode, get_serializer
from ..engine.chunker import Chunker
from ..engine.reassembler import Reassembler
from ..engine.scheduler import SendScheduler
from ..exceptions import (
    ChannelError,
    ChunkSizeError,
    ChunkwireError,
    MalformedChunkError,
    SendNotOpenError,
    SerializationError,
)
from .channel import DataChannel
from .negotiator import ConnectionParams, Negotiator, StartParams

logger = logging.getLogger(__name__)

# Marks an inbound chunk that did not complete its transfer
_INCOMPLETE = object()

EventHandler = Callable[..., Any]


class SessionState(Enum):
    """Lifecycle state of a session."""

    PENDING = auto()  # constructed, channel not ready
    OPEN = auto()     # channel ready, send/receive active
    CLOSED = auto()   # terminal


class SessionEvent(str, Enum):
    """Events a session emits."""

    OPEN = "open"
    DATA = "data"
    ERROR = "error"
    CLOSE = "close"


class TransferSession:
    """
    A data connection to one peer.

    Usage:
        session = TransferSession("peer-b", negotiator, serialization="binary")
        session.on("open", lambda: session.send({"hello": b"world"}))
        session.on("data", print)
        session.on("error", lambda err: print("failed:", err))

    Runtime failures are reported through the ``error`` event and never
    close the session. Only an invalid configuration raises, from the
    constructor.
    """

    def __init__(
        self,
        remote_id: str,
        negotiator: Negotiator,
        config: Optional[SessionConfig] = None,
        *,
        serialization: Optional[str] = None,
        label: Optional[str] = None,
        connection_id: Optional[str] = None,
        queued_messages: Optional[list[Any]] = None,
        payload: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Create a session and begin channel establishment.

        Args:
            remote_id: Id of the peer this session talks to
            negotiator: Collaborator that produces the data channel
            config: Session configuration (defaults + environment)
            serialization: Overrides config.serialization
            label: Overrides config.label
            connection_id: Overrides config.connection_id
            queued_messages: Values to send as soon as the channel is ready
            payload: Offer received from the remote; when given, this side
                answers instead of originating

        Raises:
            ConfigurationError: If the serialization mode is unknown
        """
        overrides = {
            key: value
            for key, value in (
                ("serialization", serialization),
                ("label", label),
                ("connection_id", connection_id),
            )
            if value is not None
        }
        config = config or SessionConfig()
        self.config = config.model_copy(update=overrides) if overrides else config

        # Fails before any listener could attach, so it raises
        self._mode = self.config.mode
        self._serializer = get_serializer(self._mode)

        self.remote_id = remote_id
        self.connection_id = self.config.connection_id or f"dc_{uuid.uuid4().hex[:16]}"
        self.label = self.config.label or self.connection_id

        self._state = SessionState.PENDING
        self._handlers: dict[SessionEvent, list[EventHandler]] = {
            event: [] for event in SessionEvent
        }
        # Running coroutine handlers
        self._tasks: set[asyncio.Future] = set()

        # Values sent before the channel was ready
        self._pre_ready: deque[Any] = deque(queued_messages or [])

        self._channel: Optional[DataChannel] = None
        self._chunker = Chunker(self.config.max_message_size)
        self._reassembler = Reassembler()
        self._scheduler = SendScheduler(
            self._send_to_channel,
            self.config.send_interval,
            on_error=self._on_send_failed,
        )

        self._negotiator = negotiator
        negotiator.on_channel_ready(self._on_channel_ready)
        negotiator.on_failure(self._on_negotiation_failed)

        params: StartParams = payload if payload is not None else ConnectionParams(
            originator=True,
            kind="data",
            label=self.label,
        )
        negotiator.start_connection(params)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def serialization_mode(self) -> SerializationMode:
        """Serialization mode, fixed for the session's lifetime."""
        return self._mode

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is SessionState.OPEN

    @property
    def channel(self) -> Optional[DataChannel]:
        return self._channel

    @property
    def queued(self) -> int:
        """Entries waiting in the outbound queue."""
        return self._scheduler.pending

    @property
    def buffered(self) -> int:
        """Values waiting for the channel to become ready."""
        return len(self._pre_ready)

    @property
    def pending_transfers(self) -> list[str]:
        """Ids of inbound transfers still being reassembled."""
        return self._reassembler.active_transfers

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: str | SessionEvent, handler: EventHandler) -> EventHandler:
        """
        Register an event handler.

        Handlers may be plain callables or coroutine functions; coroutines
        are scheduled on the running loop.
        """
        self._handlers[SessionEvent(event)].append(handler)
        return handler

    def off(self, event: str | SessionEvent, handler: EventHandler) -> None:
        """Remove an event handler."""
        handlers = self._handlers[SessionEvent(event)]
        if handler in handlers:
            handlers.remove(handler)

    def _emit(self, event: SessionEvent, *args: Any) -> None:
        for handler in list(self._handlers[event]):
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    self._schedule(event, result)
            except Exception as e:
                logger.error(f"Error in {event.value} handler on {self.connection_id}: {e}")

    def _schedule(self, event: SessionEvent, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable, loop=asyncio.get_running_loop())
        task.add_done_callback(lambda t: self._on_handler_done(event, t))
        self._tasks.add(task)

    def _on_handler_done(self, event: SessionEvent, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Error in {event.value} handler on {self.connection_id}: {exc}")

    def _emit_error(self, error: ChunkwireError) -> None:
        if not self._handlers[SessionEvent.ERROR]:
            logger.warning(f"Unhandled session error on {self.connection_id}: {error}")
        self._emit(SessionEvent.ERROR, error)

    # ------------------------------------------------------------------
    # Channel lifecycle
    # ------------------------------------------------------------------

    def _on_channel_ready(self, channel: DataChannel) -> None:
        if self._state is SessionState.CLOSED:
            channel.close()
            return

        self._channel = channel
        if channel.max_message_size < self._chunker.max_message_size:
            self._chunker.max_message_size = channel.max_message_size

        channel.on_ready(self._on_channel_open)
        channel.on_message(self._handle_message)
        channel.on_closed(self._on_channel_closed)

    def _on_channel_open(self) -> None:
        if self._state is not SessionState.PENDING:
            return

        self._state = SessionState.OPEN
        logger.info(f"Data channel connection success: {self.connection_id} <-> {self.remote_id}")

        # Earlier sends go out ahead of anything an open handler sends
        while self._pre_ready and self._state is SessionState.OPEN:
            self.send(self._pre_ready.popleft())

        self._emit(SessionEvent.OPEN)

    def _on_channel_closed(self) -> None:
        logger.info(f"DataChannel closed for: {self.connection_id}")
        self.close()

    def _on_negotiation_failed(self, error: Exception) -> None:
        self._emit_error(ChannelError(f"Channel establishment failed: {error}", self.label))

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send(self, value: Any) -> None:
        """
        Send a value to the peer.

        Binary modes chunk the value to fit the channel. Failures are
        reported via the ``error`` event.
        """
        if value is None:
            logger.debug("Ignoring send of None")
            return

        if self._state is SessionState.PENDING and self.config.buffer_before_open:
            self._pre_ready.append(value)
            return

        if self._state is not SessionState.OPEN:
            self._emit_error(SendNotOpenError(
                "Connection is not open. You should listen for the `open` "
                "event before sending messages.",
                self.connection_id,
            ))
            return

        try:
            entries = self._prepare(value)
        except (SerializationError, ChunkSizeError) as e:
            logger.warning(f"Send failed on {self.connection_id}: {e}")
            self._emit_error(e)
            return

        for entry in entries:
            self._scheduler.enqueue(entry)

    def _prepare(self, value: Any) -> list[Any]:
        packed = self._serializer.encode(value)

        if not self._mode.is_chunked:
            return [packed]

        metadata = self._chunker.describe(value, packed)
        return [pack_envelope(chunk) for chunk in self._chunker.split(packed, metadata)]

    def _send_to_channel(self, entry: Any) -> bool:
        if self._channel is None or not self._channel.is_ready:
            return False
        return self._channel.try_send(entry)

    def _on_send_failed(self, entry: Any, error: Exception) -> None:
        self._emit_error(ChannelError(f"Channel rejected message: {error}", self.label))

    async def flush(self) -> None:
        """Wait until every queued entry has been handed to the channel."""
        await self._scheduler.flush()

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    def _handle_message(self, raw: Any) -> None:
        if self._state is SessionState.CLOSED:
            return

        try:
            value = self._receive(raw)
        except (SerializationError, MalformedChunkError) as e:
            logger.warning(f"Dropped inbound message on {self.connection_id}: {e}")
            self._emit_error(e)
            return

        if value is not _INCOMPLETE:
            self._emit(SessionEvent.DATA, value)

    def _receive(self, raw: Any) -> Any:
        if self._mode is SerializationMode.NONE:
            return raw
        if self._mode is SerializationMode.JSON:
            return self._serializer.decode(raw)

        envelope = unpack_envelope(raw)
        payload = self._reassembler.ingest(envelope)
        if payload is None:
            return _INCOMPLETE

        logger.debug(f"Transfer {envelope.id[:8]} complete ({len(payload)} bytes)")
        return self._serializer.decode(payload)

    # ------------------------------------------------------------------
    # Closing
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the session, discarding queued and partially received data."""
        if self._state is SessionState.CLOSED:
            return

        self._state = SessionState.CLOSED

        dropped = self._scheduler.clear()
        discarded = self._reassembler.clear()
        self._pre_ready.clear()

        logger.info(
            f"Closed session {self.connection_id} "
            f"({dropped} queued, {discarded} partial transfer(s) discarded)"
        )

        self._negotiator.close()
        self._emit(SessionEvent.CLOSE)

    def __repr__(self) -> str:
        return (
            f"TransferSession({self.connection_id}, remote={self.remote_id}, "
            f"{self._mode.value}, {self._state.name})"
        )
