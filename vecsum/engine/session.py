"""
Connection Session - runs the protocol state machine on one stream.

    AWAITING_AUTH --accept--> AUTHENTICATED --> PROCESSING --> CLOSED
    AWAITING_AUTH --reject--> REJECTED --------------------------> CLOSED

Every failure closes the connection; nothing is retried or resumed.
A fresh session is built for each accepted connection.
"""
from __future__ import annotations

import socket
from typing import Any, Optional

from vecsum.engine.auth_negotiator import AuthNegotiator
from vecsum.engine.credentials import CredentialStore
from vecsum.engine.vector_processor import ResultCallback, VectorBatchProcessor
from vecsum.exceptions import SessionStateError, VecsumError
from vecsum.logging import EventSink, StructlogEventSink
from vecsum.models import BatchSummary, ErrorKind, SessionReport, SessionState

_TRANSITIONS = {
    SessionState.AWAITING_AUTH: {SessionState.AUTHENTICATED, SessionState.REJECTED, SessionState.CLOSED},
    SessionState.AUTHENTICATED: {SessionState.PROCESSING, SessionState.CLOSED},
    SessionState.PROCESSING: {SessionState.CLOSED},
    SessionState.REJECTED: {SessionState.CLOSED},
    SessionState.CLOSED: set(),
}


class ConnectionSession:
    """Sequences authentication and vector processing over one stream."""

    def __init__(
        self,
        stream: Any,
        credentials: CredentialStore,
        sink: Optional[EventSink] = None,
        peer: str = "unknown",
        processor: Optional[VectorBatchProcessor] = None,
        on_result: Optional[ResultCallback] = None,
    ):
        self.stream = stream
        self.peer = peer
        self.sink = sink or StructlogEventSink(peer=peer)
        self.negotiator = AuthNegotiator(credentials, self.sink)
        self.processor = processor or VectorBatchProcessor(self.sink)
        self.on_result = on_result
        self.state = SessionState.AWAITING_AUTH
        self.report = SessionReport(peer=peer)

    def _transition(self, new_state: SessionState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise SessionStateError(
                f"Invalid session transition {self.state.value} -> {new_state.value}",
                current_state=self.state.value,
                expected_state=new_state.value,
            )
        self.sink.record("debug", "session_state", previous=self.state.value, state=new_state.value)
        self.state = new_state

    def run(self) -> SessionReport:
        """Drive the session to CLOSED and return its report."""
        if self.state != SessionState.AWAITING_AUTH:
            raise SessionStateError(
                "Session already ran",
                current_state=self.state.value,
                expected_state=SessionState.AWAITING_AUTH.value,
            )
        try:
            self._run()
        except VecsumError as e:
            self._fail(e.kind or ErrorKind.TRANSPORT, e.message, e.details)
        except OSError as e:
            self._fail(ErrorKind.TRANSPORT, str(e), {"error_type": type(e).__name__})
        finally:
            self.close()
        return self.report

    def _run(self) -> None:
        result = self.negotiator.authenticate(self.stream)
        self.report.login = result.login
        if not result.accepted:
            self._transition(SessionState.REJECTED)
            self.report.error_kind = result.error_kind
            self.report.error = result.reason
            return

        self.report.auth_accepted = True
        self._transition(SessionState.AUTHENTICATED)
        self._transition(SessionState.PROCESSING)
        totals = BatchSummary()
        try:
            self.processor.process(self.stream, self.on_result, totals=totals)
        finally:
            # totals count what was answered, even when the batch was cut short
            self.report.vectors = totals.vectors
            self.report.elements = totals.elements
            self.sink.record(
                "info",
                "session_totals",
                login=result.login,
                vectors=totals.vectors,
                elements=totals.elements,
            )

    def _fail(self, kind: ErrorKind, message: str, details: dict) -> None:
        self.report.error_kind = kind
        self.report.error = message
        level = "warning" if kind in (ErrorKind.FORMAT, ErrorKind.AUTH_REJECTED) else "error"
        self.sink.record(level, "session_error", error_kind=kind.value, error=message, details=details)

    def close(self) -> None:
        """Release the stream; safe to call more than once."""
        if self.state == SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        self.report.final_state = SessionState.CLOSED
        try:
            self.stream.shutdown(socket.SHUT_RDWR)
        except (OSError, AttributeError):
            pass
        try:
            self.stream.close()
        except OSError as e:
            self.sink.record("warning", "stream_close_failed", error=str(e), error_type=type(e).__name__)
        self.sink.record(
            "info",
            "session_closed",
            login=self.report.login,
            auth_accepted=self.report.auth_accepted,
            vectors=self.report.vectors,
            error_kind=self.report.error_kind.value if self.report.error_kind else None,
        )
