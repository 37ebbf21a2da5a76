"""
Authentication Negotiator

Handles the single authentication datagram a client sends right after
connecting:

    [login bytes][16 hex chars salt][56 hex chars SHA-224 digest]

The last 72 bytes are always the hex suffix; whatever precedes them is
the login, so a login may be empty or contain arbitrary bytes.

The server recomputes SHA-224 over the salt's *hex text* followed by
the stored password and compares it with the client digest in constant
time. The reply is "OK" or "ERR"; the client is never told why it was
rejected, only the event sink records the reason.
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Any, Optional

from vecsum.config import settings
from vecsum.engine.credentials import CredentialStore
from vecsum.engine.hex_codec import hex_to_bytes, is_valid_hex
from vecsum.exceptions import AuthenticationRejected, AuthPayloadError, ReceiveError, SendError
from vecsum.logging import EventSink, StructlogEventSink
from vecsum.models import AuthRequest, AuthResult, ErrorKind

SALT_HEX_LEN = 16
HASH_HEX_LEN = 56
HEX_SUFFIX_LEN = SALT_HEX_LEN + HASH_HEX_LEN
DIGEST_SIZE = 28

RESPONSE_OK = b"OK"
RESPONSE_ERR = b"ERR"


def parse_auth_request(data: bytes) -> AuthRequest:
    """
    Split an authentication datagram into login, salt and client digest.

    Raises:
        AuthPayloadError: payload shorter than the hex suffix, or suffix not hex
    """
    if len(data) < HEX_SUFFIX_LEN:
        raise AuthPayloadError(
            f"Auth data too short: {len(data)} bytes (need at least {HEX_SUFFIX_LEN})",
            details={"reason": "payload_too_short", "length": len(data)},
        )

    suffix = data[-HEX_SUFFIX_LEN:]
    if not is_valid_hex(suffix):
        raise AuthPayloadError(
            f"Last {HEX_SUFFIX_LEN} characters are not valid hex",
            details={"reason": "suffix_not_hex", "length": len(data)},
        )

    suffix_text = suffix.decode("ascii")
    return AuthRequest(
        login=bytes(data[:-HEX_SUFFIX_LEN]),
        salt_hex=suffix_text[:SALT_HEX_LEN],
        hash_hex=suffix_text[SALT_HEX_LEN:],
    )


def compute_server_hash(salt_hex: str, password: bytes) -> bytes:
    """SHA-224 over the salt hex text concatenated with the plaintext password."""
    return hashlib.sha224(salt_hex.encode("ascii") + password).digest()


def verify_hash(request: AuthRequest, password: bytes) -> bool:
    """Constant-time comparison of the client digest with the expected one."""
    client_digest = hex_to_bytes(request.hash_hex, DIGEST_SIZE)
    server_digest = compute_server_hash(request.salt_hex, password)
    return hmac.compare_digest(server_digest, client_digest)


class AuthNegotiator:
    """
    Runs the authentication phase on one stream.

    Example:
        negotiator = AuthNegotiator(CredentialStore.from_file("clients.db"))
        result = negotiator.authenticate(client_sock)
        if result.accepted:
            ...
    """

    def __init__(
        self,
        credentials: CredentialStore,
        sink: Optional[EventSink] = None,
        max_auth_bytes: Optional[int] = None,
    ):
        self.credentials = credentials
        self.sink = sink or StructlogEventSink()
        self.max_auth_bytes = max_auth_bytes or settings.max_auth_bytes

    def authenticate(self, stream: Any) -> AuthResult:
        """
        Receive, verify and answer the authentication datagram.

        Returns:
            AuthResult with the accept/reject outcome

        Raises:
            ReceiveError: the read itself failed
            SendError: the OK/ERR reply could not be written; the computed
                outcome is kept in details["accepted"]
        """
        data = self._receive(stream)
        result = self._evaluate(data)
        self._respond(stream, result)
        return result

    def _receive(self, stream: Any) -> bytes:
        # One recv on purpose: the datagram is not length-prefixed
        try:
            data = stream.recv(self.max_auth_bytes)
        except OSError as e:
            raise ReceiveError(
                f"Failed to read authentication data: {e}",
                details={"error_type": type(e).__name__},
            )
        self.sink.record("info", "auth_data_received", length=len(data))
        return data

    def _evaluate(self, data: bytes) -> AuthResult:
        if not data:
            self.sink.record("warning", "auth_empty_payload")
            return AuthResult(accepted=False, reason="empty_payload", error_kind=ErrorKind.FORMAT)

        try:
            request = parse_auth_request(data)
        except AuthPayloadError as e:
            reason = e.details.get("reason", "bad_payload")
            self.sink.record("warning", f"auth_{reason}", length=len(data), error=e.message)
            return AuthResult(accepted=False, reason=reason, error_kind=ErrorKind.FORMAT)

        login = request.login_text
        self.sink.record(
            "info",
            "auth_request_parsed",
            login=login,
            login_length=len(request.login),
            salt_hex=request.salt_hex,
        )

        try:
            self._check(request)
        except AuthenticationRejected as e:
            self.sink.record("warning", f"auth_{e.reason}", login=login)
            return AuthResult(
                accepted=False,
                login=login,
                reason=e.reason,
                error_kind=ErrorKind.AUTH_REJECTED,
            )

        self.sink.record("info", "auth_accepted", login=login)
        return AuthResult(accepted=True, login=login)

    def _check(self, request: AuthRequest) -> None:
        password = self.credentials.lookup(request.login)
        if password is None:
            raise AuthenticationRejected("Login not found", reason="unknown_login")
        if not verify_hash(request, password):
            raise AuthenticationRejected("Hash mismatch", reason="hash_mismatch")

    def _respond(self, stream: Any, result: AuthResult) -> None:
        reply = RESPONSE_OK if result.accepted else RESPONSE_ERR
        try:
            stream.sendall(reply)
        except OSError as e:
            self.sink.record("error", "auth_reply_failed", reply=reply.decode(), error=str(e))
            raise SendError(
                f"Failed to send {reply.decode()} to client",
                details={"accepted": result.accepted, "login": result.login, "error": str(e)},
            )
        self.sink.record("info", "auth_reply_sent", reply=reply.decode())
