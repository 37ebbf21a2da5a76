"""
Custom Exception Hierarchy for vecsum

Provides structured exceptions for the protocol engine and server.
All custom exceptions inherit from VecsumError and carry an ErrorKind
tag so the connection handler can decide how to close a session
without inspecting exception types.
"""
from typing import Optional

from vecsum.models import ErrorKind


class VecsumError(Exception):
    """
    Base exception for all vecsum-specific errors.

    All custom exceptions should inherit from this class to allow
    catching all server errors with a single except clause.
    """
    kind: Optional[ErrorKind] = None

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# Configuration and Bootstrap Errors

class ConfigurationError(VecsumError):
    """
    Invalid configuration or settings.

    Raised when configuration validation fails or required settings are missing.
    """
    pass


class CredentialStoreError(ConfigurationError):
    """Credential file cannot be opened or read."""
    pass


# Network and Transport Errors

class TransportError(VecsumError):
    """
    Stream transport failures.

    Always fatal to the current connection and never retried.
    """
    kind = ErrorKind.TRANSPORT


class ConnectionTimeoutError(TransportError):
    """Connection attempt timed out."""
    pass


class EndOfStreamError(TransportError):
    """Peer closed the stream before a frame was complete."""
    pass


class ReceiveError(TransportError):
    """Reading from the stream failed (reset, timeout, closed socket)."""
    pass


class SendError(TransportError):
    """Failed to write to the stream."""
    pass


# Protocol Format Errors

class FormatError(VecsumError):
    """
    Malformed data on the wire.

    Framing cannot be recovered once one of these is raised.
    """
    kind = ErrorKind.FORMAT


class HexDecodeError(FormatError):
    """Hex text has the wrong length or a non-hex character."""
    pass


class AuthPayloadError(FormatError):
    """Authentication datagram is empty, too short or has a non-hex suffix."""
    pass


class InvalidVectorCountError(FormatError):
    """Batch header vector count outside the accepted range."""
    pass


class InvalidVectorLengthError(FormatError):
    """Vector frame length outside the accepted range."""
    pass


# Authentication Outcome

class AuthenticationRejected(VecsumError):
    """
    Authentication was negotiated and refused.

    A normal protocol outcome rather than a fault; the client only ever
    sees "ERR" regardless of which check failed.
    """
    kind = ErrorKind.AUTH_REJECTED

    def __init__(self, message: str, reason: str, details: Optional[dict] = None):
        super().__init__(message, details)
        self.reason = reason


# Resource Errors

class ResourceError(VecsumError):
    """
    Local resource failures (allocation, file handles).

    Aborts the affected session only.
    """
    kind = ErrorKind.RESOURCE


# Session Lifecycle Errors

class SessionStateError(VecsumError):
    """Invalid operation for current session state."""
    def __init__(self, message: str, current_state: str, expected_state: Optional[str] = None):
        super().__init__(message, {"current_state": current_state, "expected_state": expected_state})
        self.current_state = current_state
        self.expected_state = expected_state
