"""Test doubles and wire helpers shared by the vecsum tests."""
import hashlib
import struct

SALT_HEX = "0123456789ABCDEF"


class RecordingSink:
    """EventSink that keeps every record for assertions."""

    def __init__(self):
        self.records = []

    def record(self, level, event, **fields):
        self.records.append((level, event, fields))

    def bind(self, **context):
        return self

    @property
    def events(self):
        return [event for _, event, _ in self.records]


class ScriptedStream:
    """
    Socket stand-in that serves scripted data and captures writes.

    data may be a list of segments; a single read never crosses a segment
    boundary, like separate sends arriving on a real connection.
    """

    def __init__(self, data=b"", chunk_size=None, recv_error=None, send_error=None):
        segments = data if isinstance(data, list) else [data]
        self._segments = [bytearray(segment) for segment in segments if segment]
        self.chunk_size = chunk_size
        self.recv_error = recv_error
        self.send_error = send_error
        self.sent = bytearray()
        self.closed = False
        self.recv_calls = 0

    def _take(self, n):
        if self.recv_error is not None:
            raise self.recv_error
        self.recv_calls += 1
        if not self._segments:
            return b""
        if self.chunk_size:
            n = min(n, self.chunk_size)
        segment = self._segments[0]
        chunk = bytes(segment[:n])
        del segment[:n]
        if not segment:
            self._segments.pop(0)
        return chunk

    def recv(self, n):
        return self._take(n)

    def recv_into(self, view, n):
        chunk = self._take(n)
        view[: len(chunk)] = chunk
        return len(chunk)

    def sendall(self, data):
        if self.send_error is not None:
            raise self.send_error
        self.sent += data

    @property
    def remaining(self):
        return sum(len(segment) for segment in self._segments)

    def shutdown(self, how):
        pass

    def close(self):
        self.closed = True



def client_hash_hex(salt_hex, password):
    return hashlib.sha224(salt_hex.encode("ascii") + password.encode()).hexdigest().upper()


def auth_payload(login, password, salt_hex=SALT_HEX):
    return login.encode() + salt_hex.encode("ascii") + client_hash_hex(salt_hex, password).encode("ascii")


def u32(*values):
    return b"".join(struct.pack("<I", v) for v in values)


def vector_frame(values):
    return u32(len(values), *values)


