"""
Stream framing primitives.

Every multi-byte integer on the wire (batch count, vector length,
vector elements and results) is little-endian.
"""
from __future__ import annotations

import socket
import struct
from typing import Any

from vecsum.config import settings
from vecsum.exceptions import EndOfStreamError, ReceiveError, ResourceError, SendError

UINT32 = struct.Struct("<I")
INT32 = struct.Struct("<i")


def read_exact(stream: Any, n: int) -> bytes:
    """
    Read exactly n bytes from a socket-like stream.

    Args:
        stream: Object exposing recv_into()
        n: Number of bytes to read

    Returns:
        The n bytes read

    Raises:
        EndOfStreamError: peer closed before n bytes arrived
        ReceiveError: the underlying read failed or timed out
        ResourceError: the receive buffer could not be allocated
    """
    if n == 0:
        return b""
    try:
        buf = bytearray(n)
    except MemoryError:
        raise ResourceError(f"Cannot allocate {n} byte receive buffer", details={"size": n})

    view = memoryview(buf)
    received = 0
    chunk_size = settings.recv_chunk_size
    while received < n:
        try:
            count = stream.recv_into(view[received:], min(n - received, chunk_size))
        except socket.timeout as e:
            raise ReceiveError("Read timed out", details={"expected": n, "received": received, "error": str(e)})
        except OSError as e:
            raise ReceiveError(
                f"Read failed: {e}",
                details={"expected": n, "received": received, "error_type": type(e).__name__},
            )
        if count == 0:
            # partial frame is dropped with the buffer
            raise EndOfStreamError(
                "Stream closed mid-frame",
                details={"expected": n, "received": received},
            )
        received += count
    return bytes(buf)


def read_uint32(stream: Any) -> int:
    """Read one unsigned 32-bit integer."""
    (value,) = UINT32.unpack(read_exact(stream, UINT32.size))
    return value


def send_all(stream: Any, data: bytes) -> None:
    """Write all of data or raise SendError."""
    try:
        stream.sendall(data)
    except OSError as e:
        raise SendError(
            f"Write failed: {e}",
            details={"size": len(data), "error_type": type(e).__name__},
        )


def write_uint32(stream: Any, value: int) -> None:
    """Write one unsigned 32-bit integer."""
    send_all(stream, UINT32.pack(value))


def write_int32(stream: Any, value: int) -> None:
    """Write one signed 32-bit integer."""
    send_all(stream, INT32.pack(value))
