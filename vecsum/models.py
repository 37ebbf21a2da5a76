"""
Core data models
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from pydantic import BaseModel


class ErrorKind(str, Enum):
    """Failure classes that end a session"""

    TRANSPORT = "transport"
    FORMAT = "format"
    AUTH_REJECTED = "auth_rejected"
    RESOURCE = "resource"


class SessionState(str, Enum):
    """Connection session state"""

    AWAITING_AUTH = "awaiting_auth"
    AUTHENTICATED = "authenticated"
    PROCESSING = "processing"
    REJECTED = "rejected"
    CLOSED = "closed"


@dataclass(frozen=True)
class AuthRequest:
    """Decomposed authentication datagram: [login][salt hex][hash hex]"""

    login: bytes
    salt_hex: str
    hash_hex: str

    @property
    def login_text(self) -> str:
        return self.login.decode("utf-8", errors="replace")


class AuthResult(BaseModel):
    """Outcome of the authentication phase"""

    accepted: bool
    login: str = ""
    # Diagnostic only, never sent to the client
    reason: Optional[str] = None
    error_kind: Optional[ErrorKind] = None


class BatchSummary(BaseModel):
    """Totals for one processed vector batch"""

    vectors: int = 0
    elements: int = 0


class SessionReport(BaseModel):
    """Final record of one connection"""

    peer: str
    login: Optional[str] = None
    final_state: SessionState = SessionState.CLOSED
    auth_accepted: bool = False
    vectors: int = 0
    elements: int = 0
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
