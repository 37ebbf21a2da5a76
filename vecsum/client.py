"""
Reference client for the vecsum wire protocol.

Used by the integration tests and handy for poking a running server:

    with VectorClient("127.0.0.1", 33333) as client:
        if client.authenticate("alice", "secret"):
            print(client.send_batch([[100, 200], [4294967295]]))
"""
from __future__ import annotations

import secrets
import socket
from typing import List, Optional, Sequence, Union

import structlog

from vecsum.engine.auth_negotiator import (
    RESPONSE_ERR,
    RESPONSE_OK,
    SALT_HEX_LEN,
    compute_server_hash,
)
from vecsum.engine.frame_reader import INT32, UINT32, read_exact, send_all
from vecsum.engine.hex_codec import bytes_to_hex, is_valid_hex
from vecsum.exceptions import ConnectionTimeoutError, ReceiveError, TransportError

logger = structlog.get_logger()

Text = Union[str, bytes]


def _as_bytes(value: Text) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


def new_salt_hex() -> str:
    """Random 8-byte salt as 16 uppercase hex characters."""
    return bytes_to_hex(secrets.token_bytes(SALT_HEX_LEN // 2))


def build_auth_payload(login: Text, password: Text, salt_hex: Optional[str] = None) -> bytes:
    """Build the [login][salt hex][SHA-224 hex] authentication datagram."""
    salt_hex = salt_hex or new_salt_hex()
    if len(salt_hex) != SALT_HEX_LEN or not is_valid_hex(salt_hex):
        raise ValueError(f"Salt must be {SALT_HEX_LEN} hex characters")
    digest = compute_server_hash(salt_hex, _as_bytes(password))
    return _as_bytes(login) + salt_hex.encode("ascii") + bytes_to_hex(digest).encode("ascii")


def encode_vector(values: Sequence[int]) -> bytes:
    """Length-prefixed little-endian uint32 vector frame."""
    return UINT32.pack(len(values)) + b"".join(UINT32.pack(v) for v in values)


class VectorClient:
    """Blocking client holding one connection."""

    def __init__(self, host: str, port: int, timeout_sec: Optional[float] = 5.0):
        self.host = host
        self.port = port
        self.timeout_sec = timeout_sec
        self.sock: Optional[socket.socket] = None

    def __enter__(self) -> "VectorClient":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def connect(self) -> None:
        if self.sock is not None:
            return
        try:
            self.sock = socket.create_connection((self.host, self.port), timeout=self.timeout_sec)
        except socket.timeout:
            raise ConnectionTimeoutError(
                f"Connection timeout to {self.host}:{self.port}",
                details={"timeout_sec": self.timeout_sec},
            )
        except OSError as e:
            raise TransportError(f"Failed to connect to {self.host}:{self.port}: {e}")
        logger.debug("client_connected", host=self.host, port=self.port)

    def _require_socket(self) -> socket.socket:
        if self.sock is None:
            raise TransportError("Not connected")
        return self.sock

    def send_raw(self, data: bytes) -> None:
        send_all(self._require_socket(), data)

    def authenticate(self, login: Text, password: Text, salt_hex: Optional[str] = None) -> bool:
        """Send the handshake; True on "OK", False on "ERR"."""
        self.send_raw(build_auth_payload(login, password, salt_hex))
        return self.read_auth_reply()

    def read_auth_reply(self) -> bool:
        sock = self._require_socket()
        try:
            reply = sock.recv(len(RESPONSE_ERR))
        except OSError as e:
            raise ReceiveError(f"Failed to read auth reply: {e}")
        # "OK" may arrive split across reads
        if reply == RESPONSE_OK[:1]:
            reply += read_exact(sock, 1)
        if reply == RESPONSE_OK:
            return True
        if reply.startswith(RESPONSE_ERR[:1]):
            return False
        raise ReceiveError("Unexpected auth reply", details={"reply": reply.hex()})

    def send_batch(self, vectors: Sequence[Sequence[int]]) -> List[int]:
        """Send a whole batch and collect one result per vector."""
        sock = self._require_socket()
        send_all(sock, UINT32.pack(len(vectors)))
        results = []
        for vector in vectors:
            send_all(sock, encode_vector(vector))
            (result,) = INT32.unpack(read_exact(sock, INT32.size))
            results.append(result)
        return results

    def close(self) -> None:
        if self.sock is None:
            return
        try:
            self.sock.close()
        finally:
            self.sock = None
