"""
Tests for stream framing primitives.
"""
import socket
import struct

import pytest

from helpers import ScriptedStream
from vecsum.engine.frame_reader import read_exact, read_uint32, write_int32, write_uint32
from vecsum.exceptions import EndOfStreamError, ReceiveError, SendError, TransportError


class TestReadExact:
    def test_reads_across_short_chunks(self):
        stream = ScriptedStream(b"abcdefghij", chunk_size=3)

        assert read_exact(stream, 10) == b"abcdefghij"
        assert stream.recv_calls == 4

    def test_leaves_trailing_bytes_unread(self):
        stream = ScriptedStream(b"abcdef")

        assert read_exact(stream, 4) == b"abcd"
        assert stream.remaining == 2

    def test_zero_length_does_not_touch_stream(self):
        stream = ScriptedStream(b"abc")

        assert read_exact(stream, 0) == b""
        assert stream.recv_calls == 0

    def test_short_stream_is_end_of_stream(self):
        stream = ScriptedStream(b"abc", chunk_size=2)

        with pytest.raises(EndOfStreamError) as excinfo:
            read_exact(stream, 5)

        assert excinfo.value.details["received"] == 3
        assert excinfo.value.details["expected"] == 5

    def test_os_error_is_receive_error(self):
        stream = ScriptedStream(recv_error=ConnectionResetError("reset by peer"))

        with pytest.raises(ReceiveError):
            read_exact(stream, 4)

    def test_timeout_is_receive_error(self):
        stream = ScriptedStream(recv_error=socket.timeout("timed out"))

        with pytest.raises(ReceiveError, match="timed out"):
            read_exact(stream, 4)

    def test_errors_are_transport_errors(self):
        with pytest.raises(TransportError):
            read_exact(ScriptedStream(b""), 1)


class TestIntegers:
    def test_read_uint32_is_little_endian(self):
        stream = ScriptedStream(b"\x01\x00\x00\x00\xff\xff\xff\xff")

        assert read_uint32(stream) == 1
        assert read_uint32(stream) == 0xFFFFFFFF

    def test_write_uint32(self):
        stream = ScriptedStream()
        write_uint32(stream, 0x01020304)

        assert bytes(stream.sent) == b"\x04\x03\x02\x01"

    def test_write_int32(self):
        stream = ScriptedStream()
        write_int32(stream, 2147483647)
        write_int32(stream, 300)

        assert struct.unpack("<ii", bytes(stream.sent)) == (2147483647, 300)

    def test_write_failure_is_send_error(self):
        stream = ScriptedStream(send_error=BrokenPipeError("broken pipe"))

        with pytest.raises(SendError):
            write_uint32(stream, 1)

    def test_over_real_socket(self, stream_pair):
        server_side, client_side = stream_pair
        client_side.sendall(struct.pack("<I", 100000))

        assert read_uint32(server_side) == 100000
