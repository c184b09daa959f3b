"""
Chunk reassembly for inbound transfers.

This module provides:
- Transfer: One in-progress reconstruction
- Reassembler: Table of live transfers keyed by transfer id, tolerant of
  out-of-order, interleaved and duplicated chunks
"""

import logging
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional

from ..core.envelope import ChunkEnvelope
from ..exceptions import MalformedChunkError

logger = logging.getLogger(__name__)


class Transfer(BaseModel):
    """Buffer for reassembling a single transfer."""

    id: str
    total_parts: int
    size: int
    type: str
    name: Optional[str] = None
    mime_type: Optional[str] = None
    parts: list[Optional[bytes]] = Field(default_factory=list)
    received_parts: int = 0

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def model_post_init(self, __context):
        if not self.parts:
            self.parts = [None] * self.total_parts

    @classmethod
    def from_envelope(cls, envelope: ChunkEnvelope) -> "Transfer":
        """Start a transfer from the first chunk seen for its id."""
        return cls(
            id=envelope.id,
            total_parts=envelope.total_parts,
            size=envelope.size,
            type=envelope.type,
            name=envelope.name,
            mime_type=envelope.mime_type,
        )

    def add_part(self, index: int, data: bytes) -> bool:
        """
        Store a slice.

        Returns:
            True if the index was new, False if it overwrote a duplicate
        """
        is_new = self.parts[index] is None
        self.parts[index] = data
        if is_new:
            self.received_parts += 1
        return is_new

    @property
    def is_complete(self) -> bool:
        """Check if all parts have been received."""
        return self.received_parts == self.total_parts

    @property
    def progress(self) -> float:
        """Get reassembly progress (0.0 to 1.0)."""
        return self.received_parts / self.total_parts if self.total_parts > 0 else 0.0

    @property
    def missing(self) -> list[int]:
        """Get list of missing part indices."""
        return [i for i, part in enumerate(self.parts) if part is None]

    def reassemble(self) -> bytes:
        """
        Join parts in index order.

        Raises:
            ValueError: If not all parts are present
        """
        if not self.is_complete:
            raise ValueError(f"Missing parts: {self.missing}")

        return b"".join(self.parts)


class Reassembler:
    """
    Reassembles chunk envelopes back into packed payloads.

    A transfer lives in the table only between its first and its last
    distinct chunk.
    """

    def __init__(self) -> None:
        self._transfers: dict[str, Transfer] = {}

    def ingest(self, envelope: ChunkEnvelope) -> Optional[bytes]:
        """
        Add a chunk and return the payload if it completes its transfer.

        Args:
            envelope: Inbound chunk

        Returns:
            Reassembled payload if complete, None otherwise

        Raises:
            MalformedChunkError: If the chunk's index or part count is
                invalid, or the payload does not match its declared size;
                the affected transfer is discarded
        """
        transfer_id = envelope.id
        transfer = self._transfers.get(transfer_id)

        try:
            self._validate(envelope, transfer)
        except MalformedChunkError:
            self.discard(transfer_id)
            raise

        if transfer is None:
            transfer = Transfer.from_envelope(envelope)
            self._transfers[transfer_id] = transfer
            logger.debug(
                f"Receiving transfer {transfer_id[:8]}: "
                f"{transfer.total_parts} part(s), {transfer.size} bytes"
            )

        if not transfer.add_part(envelope.index, envelope.data or b""):
            logger.debug(f"Duplicate part {envelope.index} for transfer {transfer_id[:8]}")

        if not transfer.is_complete:
            return None

        del self._transfers[transfer_id]
        payload = transfer.reassemble()
        if len(payload) != transfer.size:
            raise MalformedChunkError(
                f"Transfer {transfer_id[:8]} reassembled to {len(payload)} bytes, "
                f"declared {transfer.size}",
                transfer_id=transfer_id,
            )
        return payload

    @staticmethod
    def _validate(envelope: ChunkEnvelope, transfer: Optional[Transfer]) -> None:
        transfer_id = envelope.id

        if envelope.total_parts < 1:
            raise MalformedChunkError(
                f"Transfer {transfer_id[:8]} declares {envelope.total_parts} parts",
                transfer_id=transfer_id,
            )

        # Every chunk but an empty payload's single chunk carries data
        if envelope.total_parts > max(1, envelope.size):
            raise MalformedChunkError(
                f"Transfer {transfer_id[:8]} declares {envelope.total_parts} parts "
                f"for {envelope.size} bytes",
                transfer_id=transfer_id,
            )

        if transfer is not None and transfer.total_parts != envelope.total_parts:
            raise MalformedChunkError(
                f"Transfer {transfer_id[:8]} changed part count from "
                f"{transfer.total_parts} to {envelope.total_parts}",
                transfer_id=transfer_id,
            )

        if envelope.index is None:
            raise MalformedChunkError(
                f"Chunk of transfer {transfer_id[:8]} has no index",
                transfer_id=transfer_id,
            )

        if not 0 <= envelope.index < envelope.total_parts:
            raise MalformedChunkError(
                f"Chunk index {envelope.index} out of range for transfer "
                f"{transfer_id[:8]} ({envelope.total_parts} parts)",
                transfer_id=transfer_id,
            )

    def get_progress(self, transfer_id: str) -> Optional[float]:
        """Get progress for a transfer."""
        transfer = self._transfers.get(transfer_id)
        if transfer:
            return transfer.progress
        return None

    def get_missing(self, transfer_id: str) -> Optional[list[int]]:
        """Get missing part indices for a transfer."""
        transfer = self._transfers.get(transfer_id)
        if transfer:
            return transfer.missing
        return None

    def get(self, transfer_id: str) -> Optional[Transfer]:
        """Get a live transfer."""
        return self._transfers.get(transfer_id)

    def discard(self, transfer_id: str) -> bool:
        """Discard an incomplete transfer."""
        if transfer_id in self._transfers:
            del self._transfers[transfer_id]
            logger.debug(f"Discarded transfer {transfer_id[:8]}")
            return True
        return False

    def clear(self) -> int:
        """Discard every live transfer and return how many there were."""
        count = len(self._transfers)
        self._transfers.clear()
        return count

    @property
    def active_transfers(self) -> list[str]:
        """Get list of live transfer ids."""
        return list(self._transfers.keys())

    def __len__(self) -> int:
        return len(self._transfers)

    def __contains__(self, transfer_id: str) -> bool:
        return transfer_id in self._transfers
