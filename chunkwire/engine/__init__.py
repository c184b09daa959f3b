"""
Transfer engine components.

This package provides:
- Chunker: Split packed payloads into channel-sized envelopes
- Reassembler: Rebuild payloads from envelopes in any arrival order
- SendScheduler: Paced FIFO outbound queue
"""

from .chunker import Chunker, new_transfer_id
from .reassembler import Reassembler, Transfer
from .scheduler import SendScheduler

__all__ = [
    "Chunker",
    "new_transfer_id",
    "Reassembler",
    "Transfer",
    "SendScheduler",
]
