"""
Paced outbound queue.

SendScheduler drains a FIFO queue onto a channel one entry per tick. A
failed hand-off puts the entry back at the head so the stream order seen
by the peer always equals the enqueue order.
"""

import asyncio
import logging
from collections import deque
from typing import Any, Callable, Optional

from ..config import DEFAULT_SEND_INTERVAL
from ..exceptions import ChannelError

logger = logging.getLogger(__name__)

# Returns True if the channel accepted the entry
SendFunction = Callable[[Any], bool]

# Receives an entry dropped because send raised
ErrorCallback = Callable[[Any, Exception], None]


class SendScheduler:
    """
    FIFO send queue drained on a fixed interval.

    The drain loop is an asyncio task that exists only while the queue is
    non-empty; enqueue() must be called from a running event loop.
    """

    def __init__(
        self,
        send: SendFunction,
        interval: float = DEFAULT_SEND_INTERVAL,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        """
        Initialize scheduler.

        Args:
            send: Hands one entry to the channel; False or ChannelError
                means the entry must be retried
            interval: Seconds between ticks
            on_error: Called with an entry dropped because send raised
                anything else; the loop keeps draining
        """
        self._send = send
        self.interval = interval
        self._on_error = on_error

        self._queue: deque[Any] = deque()
        self._task: Optional[asyncio.Task] = None

        # Stats
        self.sent = 0
        self.retries = 0
        self.dropped = 0

    @property
    def pending(self) -> int:
        """Number of entries waiting to be sent."""
        return len(self._queue)

    @property
    def is_running(self) -> bool:
        """Check if the drain loop is active."""
        return self._task is not None and not self._task.done()

    def enqueue(self, entry: Any) -> None:
        """Append an entry and make sure the drain loop is running."""
        self._queue.append(entry)
        if not self.is_running:
            self._task = asyncio.get_running_loop().create_task(self._drain())
            self._task.add_done_callback(self._on_drain_done)

    async def _drain(self) -> None:
        while self._queue:
            await asyncio.sleep(self.interval)

            if not self._queue:
                break

            entry = self._queue.popleft()
            try:
                accepted = self._try_send(entry)
            except Exception as e:
                self._drop(entry, e)
                continue

            if accepted:
                self.sent += 1
            else:
                self._queue.appendleft(entry)
                self.retries += 1

    def _try_send(self, entry: Any) -> bool:
        try:
            return bool(self._send(entry))
        except ChannelError as e:
            logger.debug(f"Channel refused entry, will retry: {e}")
            return False

    def _drop(self, entry: Any, error: Exception) -> None:
        self.dropped += 1
        logger.error(f"Dropped entry after send failure: {error!r}")
        if self._on_error is not None:
            self._on_error(entry, error)

    def _on_drain_done(self, task: asyncio.Task) -> None:
        if self._task is task:
            self._task = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Send loop stopped with {self.pending} queued: {exc!r}")

    async def flush(self) -> None:
        """Wait until the queue has drained (or the loop was stopped)."""
        while self._task is not None and not self._task.done():
            await asyncio.wait({self._task})

    def clear(self) -> int:
        """Stop the drain loop and drop every queued entry."""
        if self._task is not None:
            self._task.cancel()
            self._task = None

        dropped = len(self._queue)
        self._queue.clear()
        return dropped

    def stats(self) -> dict[str, Any]:
        """Get scheduler statistics."""
        return {
            "pending": self.pending,
            "sent": self.sent,
            "retries": self.retries,
            "dropped": self.dropped,
            "running": self.is_running,
        }
