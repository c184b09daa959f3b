"""
Tests for the reassembler.

These tests cover:
- Transfer buffers
- Order independence and interleaved transfers
- Duplicate tolerance
- Malformed chunk rejection
"""

import itertools

import pytest

from chunkwire.core.envelope import ChunkEnvelope
from chunkwire.engine.chunker import Chunker
from chunkwire.engine.reassembler import Reassembler, Transfer
from chunkwire.exceptions import MalformedChunkError


def chunk(transfer_id: str, index, total: int, data: bytes, **extra) -> ChunkEnvelope:
    return ChunkEnvelope(
        id=transfer_id,
        type="bytes",
        size=extra.pop("size", len(data) * total),
        total_parts=total,
        index=index,
        data=data,
        **extra,
    )


def split(payload: bytes, transfer_id: str = "t1", capacity: int = 10) -> list[ChunkEnvelope]:
    chunker = Chunker(max_message_size=capacity + 1, sizeof=lambda meta: 1)
    meta = ChunkEnvelope(id=transfer_id, type="bytes", size=len(payload), total_parts=0)
    return chunker.split(payload, meta)


class TestTransfer:
    """Tests for Transfer buffers."""

    def test_presized_parts(self):
        """Parts are allocated up front."""
        transfer = Transfer(id="t", total_parts=3, size=30, type="bytes")

        assert transfer.parts == [None, None, None]
        assert transfer.received_parts == 0
        assert transfer.missing == [0, 1, 2]

    def test_from_envelope_copies_metadata(self):
        """Metadata comes from the first chunk."""
        envelope = chunk("t", 0, 2, b"a", size=2, name="a.txt", mime_type="text/plain")

        transfer = Transfer.from_envelope(envelope)

        assert transfer.total_parts == 2
        assert transfer.size == 2
        assert transfer.name == "a.txt"
        assert transfer.mime_type == "text/plain"

    def test_add_part_counts_once(self):
        """Re-filling an index does not count twice."""
        transfer = Transfer(id="t", total_parts=2, size=2, type="bytes")

        assert transfer.add_part(0, b"a") is True
        assert transfer.add_part(0, b"A") is False

        assert transfer.received_parts == 1
        assert transfer.parts[0] == b"A"
        assert transfer.progress == 0.5

    def test_reassemble_incomplete(self):
        """Reassembling an incomplete transfer raises."""
        transfer = Transfer(id="t", total_parts=2, size=2, type="bytes")
        transfer.add_part(1, b"b")

        with pytest.raises(ValueError, match="Missing"):
            transfer.reassemble()


class TestReassembler:
    """Tests for Reassembler."""

    def test_single_chunk(self):
        """A one-part transfer completes immediately."""
        reassembler = Reassembler()

        assert reassembler.ingest(chunk("t", 0, 1, b"complete")) == b"complete"
        assert len(reassembler) == 0

    def test_multi_chunk(self):
        """Completion only on the last distinct chunk."""
        reassembler = Reassembler()

        assert reassembler.ingest(chunk("t", 0, 2, b"Hello")) is None
        assert "t" in reassembler
        assert reassembler.ingest(chunk("t", 1, 2, b"World")) == b"HelloWorld"
        assert "t" not in reassembler

    def test_reverse_order(self):
        """Chunks fed in reverse order rebuild the payload."""
        payload = bytes(range(256)) * 8 + b"\x01" * 152
        reassembler = Reassembler()
        results = [reassembler.ingest(c) for c in reversed(split(payload, capacity=950))]

        assert results[:-1] == [None, None]
        assert results[-1] == payload

    def test_any_permutation(self):
        """Every arrival order yields the same payload."""
        payload = b"0123456789abcdefghijklmnopqrstuvwxyz"
        chunks = split(payload, capacity=9)
        assert len(chunks) == 4

        for order in itertools.permutations(chunks):
            reassembler = Reassembler()
            results = [reassembler.ingest(c) for c in order]

            assert results[-1] == payload
            assert all(r is None for r in results[:-1])

    def test_interleaved_transfers(self):
        """Chunks of different transfers may interleave."""
        first = split(b"A" * 25, transfer_id="first")
        second = split(b"B" * 35, transfer_id="second")
        reassembler = Reassembler()
        completed = {}

        for envelope in itertools.chain.from_iterable(itertools.zip_longest(first, second)):
            if envelope is None:
                continue
            result = reassembler.ingest(envelope)
            if result is not None:
                completed[envelope.id] = result

        assert completed == {"first": b"A" * 25, "second": b"B" * 35}
        assert reassembler.active_transfers == []

    def test_duplicate_does_not_complete_early(self):
        """Re-delivering a chunk does not count toward completion."""
        reassembler = Reassembler()

        assert reassembler.ingest(chunk("t", 0, 3, b"a")) is None
        assert reassembler.ingest(chunk("t", 0, 3, b"a")) is None
        assert reassembler.ingest(chunk("t", 1, 3, b"b")) is None
        assert reassembler.get("t").received_parts == 2

        assert reassembler.ingest(chunk("t", 2, 3, b"c")) == b"abc"

    def test_empty_chunk_completes(self):
        """An empty single chunk completes as an empty payload."""
        assert Reassembler().ingest(chunk("t", 0, 1, b"")) == b""

    def test_progress_and_missing(self):
        """Progress reporting for live transfers."""
        reassembler = Reassembler()
        reassembler.ingest(chunk("t", 1, 4, b"b"))

        assert reassembler.get_progress("t") == 0.25
        assert reassembler.get_missing("t") == [0, 2, 3]
        assert reassembler.get_progress("unknown") is None
        assert reassembler.get_missing("unknown") is None

    def test_discard_and_clear(self):
        """Live transfers can be discarded."""
        reassembler = Reassembler()
        reassembler.ingest(chunk("a", 0, 2, b"x"))
        reassembler.ingest(chunk("b", 0, 2, b"y"))

        assert reassembler.discard("a") is True
        assert reassembler.discard("a") is False
        assert reassembler.clear() == 1
        assert len(reassembler) == 0


class TestMalformedChunks:
    """Tests for chunk validation."""

    @pytest.mark.parametrize("index", [3, 4, -1])
    def test_index_out_of_range(self, index):
        """Indices outside [0, total) are rejected."""
        reassembler = Reassembler()

        with pytest.raises(MalformedChunkError, match="out of range") as exc_info:
            reassembler.ingest(chunk("t", index, 3, b"x"))

        assert exc_info.value.transfer_id == "t"

    def test_bad_chunk_discards_transfer(self):
        """A malformed chunk drops its transfer but not others."""
        reassembler = Reassembler()
        reassembler.ingest(chunk("t", 0, 3, b"a"))
        reassembler.ingest(chunk("other", 0, 2, b"z"))

        with pytest.raises(MalformedChunkError):
            reassembler.ingest(chunk("t", 3, 3, b"bad"))

        assert "t" not in reassembler
        assert "other" in reassembler

    def test_fresh_attempt_after_discard(self):
        """The same id completes cleanly after a discarded attempt."""
        payload = b"fresh attempt payload"
        chunks = split(payload, transfer_id="t", capacity=8)
        reassembler = Reassembler()
        reassembler.ingest(chunks[0])

        with pytest.raises(MalformedChunkError):
            reassembler.ingest(chunk("t", len(chunks), len(chunks), b"oops"))

        results = [reassembler.ingest(c) for c in chunks]
        assert results[-1] == payload

    def test_zero_parts(self):
        """A transfer must have at least one part."""
        with pytest.raises(MalformedChunkError, match="declares 0 parts"):
            Reassembler().ingest(chunk("t", 0, 0, b""))

    @pytest.mark.parametrize("size,total", [(1, 10_000_000), (0, 2), (5, 0xFFFFFFFF)])
    def test_more_parts_than_bytes(self, size, total):
        """A transfer cannot declare more parts than it has bytes."""
        reassembler = Reassembler()

        with pytest.raises(MalformedChunkError, match=f"for {size} bytes"):
            reassembler.ingest(chunk("t", 0, total, b"x", size=size))

        assert "t" not in reassembler

    def test_size_mismatch(self):
        """A payload that disagrees with its declared size is rejected."""
        reassembler = Reassembler()
        reassembler.ingest(chunk("t", 0, 2, b"abc", size=4))

        with pytest.raises(MalformedChunkError, match="declared 4"):
            reassembler.ingest(chunk("t", 1, 2, b"def", size=4))

        assert "t" not in reassembler

    def test_missing_index(self):
        """Payload chunks must carry an index."""
        with pytest.raises(MalformedChunkError, match="no index"):
            Reassembler().ingest(chunk("t", None, 2, b"x"))

    def test_part_count_changed(self):
        """All chunks of a transfer agree on the part count."""
        reassembler = Reassembler()
        reassembler.ingest(chunk("t", 0, 3, b"a"))

        with pytest.raises(MalformedChunkError, match="changed part count"):
            reassembler.ingest(chunk("t", 1, 4, b"b"))

        assert "t" not in reassembler
