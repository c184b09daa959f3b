"""
Payload chunker for channels with a bounded message size.

This module provides:
- new_transfer_id: Unique id shared by every chunk of one transfer
- Chunker: Split a packed payload into chunk envelopes that each fit the
  channel's message size, metadata included
"""

import logging
import uuid
from typing import Any, Callable, Optional

from ..config import DEFAULT_MAX_MESSAGE_SIZE
from ..core.envelope import ChunkEnvelope, metadata_overhead
from ..core.payload import describe_payload
from ..exceptions import ChunkSizeError

logger = logging.getLogger(__name__)


def new_transfer_id() -> str:
    """Generate a transfer id (122 random bits)."""
    return uuid.uuid4().hex


class Chunker:
    """
    Splits packed payloads into chunk envelopes.

    The channel's size bound applies to the whole envelope, so the usable
    payload per chunk is the message size minus the metadata footprint.
    """

    def __init__(
        self,
        max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
        sizeof: Callable[[ChunkEnvelope], int] = metadata_overhead,
    ) -> None:
        """
        Initialize chunker.

        Args:
            max_message_size: Largest message the channel accepts, in bytes
            sizeof: Measures the per-chunk metadata footprint of a template
        """
        self.max_message_size = max_message_size
        self.sizeof = sizeof

    def describe(
        self,
        value: Any,
        payload: bytes,
        transfer_id: Optional[str] = None,
    ) -> ChunkEnvelope:
        """
        Build the metadata template for sending ``value``.

        Args:
            value: The application value (inspected for name/content type)
            payload: Its packed form
            transfer_id: Optional id (generated if not provided)

        Returns:
            ChunkEnvelope without index and data
        """
        descriptor = describe_payload(value)
        return ChunkEnvelope(
            id=transfer_id or new_transfer_id(),
            type=descriptor.type_name,
            size=len(payload),
            total_parts=0,
            name=descriptor.name,
            mime_type=descriptor.mime_type,
        )

    def chunk_size(self, metadata: ChunkEnvelope) -> int:
        """
        Usable payload bytes per chunk for this metadata.

        Raises:
            ChunkSizeError: If the metadata alone fills the message size
        """
        overhead = self.sizeof(metadata)
        effective = self.max_message_size - overhead

        if effective <= 0:
            raise ChunkSizeError(
                f"Chunk metadata needs {overhead} bytes but the channel "
                f"only accepts {self.max_message_size}",
                max_message_size=self.max_message_size,
                overhead=overhead,
            )
        return effective

    def split(self, payload: bytes, metadata: ChunkEnvelope) -> list[ChunkEnvelope]:
        """
        Split a payload into chunks.

        An empty payload yields a single empty chunk so the receiver still
        sees a complete transfer.

        Args:
            payload: Packed payload
            metadata: Template from describe()

        Returns:
            Envelopes with index 0..total_parts-1, in order
        """
        size = len(payload)
        chunk_size = self.chunk_size(metadata)
        total = max(1, (size + chunk_size - 1) // chunk_size)

        template = metadata.model_copy(update={"size": size, "total_parts": total})
        chunks = []

        for i in range(total):
            start = i * chunk_size
            end = min(start + chunk_size, size)

            chunks.append(template.model_copy(update={
                "index": i,
                "data": payload[start:end],
            }))

        logger.debug(
            f"Split transfer {metadata.id[:8]} into {total} chunk(s) "
            f"of up to {chunk_size} bytes ({size} bytes total)"
        )
        return chunks
