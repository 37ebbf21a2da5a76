"""
Vector Batch Processor

Wire format after a successful handshake (all integers little-endian):

    client -> server   uint32 vector_count            1..100000
    repeated vector_count times:
        client -> server   uint32 length              1..10000000
        client -> server   length x uint32 elements
        server -> client   int32 sum, clamped to [0, INT32_MAX]

A count or length outside its range ends the session: once a frame is
rejected the byte stream can no longer be realigned.
"""
from __future__ import annotations

from typing import Any, Callable, Iterable, Iterator, Optional

from vecsum.config import settings
from vecsum.engine.frame_reader import UINT32, read_exact, read_uint32, write_int32
from vecsum.exceptions import InvalidVectorCountError, InvalidVectorLengthError
from vecsum.logging import EventSink, StructlogEventSink
from vecsum.models import BatchSummary

INT32_MAX = 2**31 - 1
UINT32_MAX = 2**32 - 1

ResultCallback = Callable[[int, int], None]


def sum_clamp(values: Iterable[int]) -> int:
    """
    Sum values into the non-negative int32 range.

    The accumulator is never allowed below zero and the loop stops as
    soon as it passes INT32_MAX.
    """
    acc = 0
    for value in values:
        acc += value
        if acc < 0:
            acc = 0
        if acc > INT32_MAX:
            return INT32_MAX
    return min(max(acc, 0), INT32_MAX)


def decode_elements(raw: bytes) -> Iterator[int]:
    """Lazily reinterpret raw bytes as little-endian uint32 elements."""
    return (value for (value,) in UINT32.iter_unpack(raw))


class VectorBatchProcessor:
    """Reads one vector batch from an authenticated stream and answers each vector."""

    def __init__(
        self,
        sink: Optional[EventSink] = None,
        max_vectors: Optional[int] = None,
        max_vector_length: Optional[int] = None,
        progress_every: Optional[int] = None,
    ):
        self.sink = sink or StructlogEventSink()
        self.max_vectors = max_vectors or settings.max_vectors
        self.max_vector_length = max_vector_length or settings.max_vector_length
        self.progress_every = progress_every or settings.progress_every

    def read_vector_count(self, stream: Any) -> int:
        count = read_uint32(stream)
        if count == 0 or count > self.max_vectors:
            raise InvalidVectorCountError(
                f"Invalid vector count: {count}",
                details={"count": count, "max": self.max_vectors},
            )
        return count

    def read_vector(self, stream: Any) -> bytes:
        """
        Read one length-prefixed vector and return its raw body.

        The length is checked before the body is read. Elements are decoded
        lazily by the caller so a clamped sum never materializes them all.
        """
        length = read_uint32(stream)
        if length == 0 or length > self.max_vector_length:
            raise InvalidVectorLengthError(
                f"Invalid vector length: {length}",
                details={"length": length, "max": self.max_vector_length},
            )
        return read_exact(stream, length * UINT32.size)

    def process(
        self,
        stream: Any,
        on_result: Optional[ResultCallback] = None,
        totals: Optional[BatchSummary] = None,
    ) -> BatchSummary:
        """
        Process a whole batch.

        Args:
            stream: Authenticated socket-like stream
            on_result: Optional callback invoked with (index, result) after
                each result has been written
            totals: Optional summary updated after every vector, so a caller
                still sees what was processed when the batch fails midway

        Returns:
            totals (or a fresh BatchSummary) with the vectors and elements processed

        Raises:
            FormatError: count or length out of range
            TransportError: stream closed or failed mid-batch
        """
        count = self.read_vector_count(stream)
        self.sink.record("info", "batch_started", vector_count=count)

        summary = totals if totals is not None else BatchSummary()
        for index in range(count):
            raw = self.read_vector(stream)
            result = sum_clamp(decode_elements(raw))
            write_int32(stream, result)

            summary.vectors += 1
            summary.elements += len(raw) // UINT32.size
            if on_result is not None:
                on_result(index, result)

            done = index + 1
            if done % self.progress_every == 0 or done == count:
                self.sink.record("info", "batch_progress", processed=done, vector_count=count)

        self.sink.record(
            "info",
            "batch_completed",
            vectors=summary.vectors,
            elements=summary.elements,
        )
        return summary
