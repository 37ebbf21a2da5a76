"""
TCP acceptor for the vecsum protocol.

Each accepted connection gets its own ConnectionSession, handled in a
daemon thread (default) or inline when running sequentially. Sessions
share only the read-only credential store and the event sink.
"""
from __future__ import annotations

import socket
import threading
from typing import Optional, Set, Tuple

import structlog

from vecsum.config import settings
from vecsum.engine.credentials import CredentialStore
from vecsum.engine.session import ConnectionSession
from vecsum.engine.vector_processor import VectorBatchProcessor
from vecsum.logging import EventSink, StructlogEventSink

logger = structlog.get_logger()


class VectorServer:
    """
    Listening socket plus accept loop with explicit lifecycle control.

    Example:
        server = VectorServer(CredentialStore.from_file("clients.db"), port=33333)
        server.run()  # blocks until stop() or Ctrl-C
    """

    def __init__(
        self,
        credentials: CredentialStore,
        sink: Optional[EventSink] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        concurrent: Optional[bool] = None,
        backlog: Optional[int] = None,
        accept_timeout_sec: Optional[float] = None,
        socket_timeout_sec: Optional[float] = None,
    ):
        self.credentials = credentials
        self.sink = sink or StructlogEventSink()
        self.host = host if host is not None else settings.host
        self.port = port if port is not None else settings.port
        self.concurrent = settings.concurrent if concurrent is None else concurrent
        self.backlog = backlog or settings.listen_backlog
        self.accept_timeout_sec = accept_timeout_sec or settings.accept_timeout_sec
        self.socket_timeout_sec = (
            socket_timeout_sec if socket_timeout_sec is not None else settings.socket_timeout_sec
        )

        self.server_socket: Optional[socket.socket] = None
        self._running = threading.Event()
        self._lock = threading.Lock()
        self._clients: Set[socket.socket] = set()
        self._threads: Set[threading.Thread] = set()

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); reflects the real port when started with port 0."""
        if self.server_socket is None:
            return self.host, self.port
        return self.server_socket.getsockname()[:2]

    def is_running(self) -> bool:
        return self._running.is_set()

    def start(self) -> None:
        """Create, bind and listen. Raises OSError when the address is unavailable."""
        if self.is_running():
            return
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
            sock.listen(self.backlog)
            # periodic wakeups so stop() is noticed without a pending connection
            sock.settimeout(self.accept_timeout_sec)
        except OSError:
            sock.close()
            raise
        self.server_socket = sock
        self._running.set()

        host, port = self.address
        self.sink.record("info", "server_listening", host=host, port=port, concurrent=self.concurrent)

    def serve_forever(self) -> None:
        """Accept connections until stop() is called."""
        if not self.is_running():
            raise RuntimeError("Server not started")

        listener = self.server_socket
        while listener is not None and self.is_running():
            try:
                client_sock, addr = listener.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self.is_running():
                    self.sink.record("error", "accept_failed", error=str(e))
                    continue
                break

            peer = f"{addr[0]}:{addr[1]}"
            self.sink.record("info", "connection_accepted", peer=peer)
            self._dispatch(client_sock, peer)

        self.sink.record("info", "server_loop_exited")

    def run(self) -> None:
        """start() + serve_forever(); Ctrl-C stops the server."""
        self.start()
        try:
            self.serve_forever()
        except KeyboardInterrupt:
            self.sink.record("info", "server_interrupted")
        finally:
            self.stop()

    def stop(self, join_timeout_sec: float = 2.0) -> None:
        """Stop accepting and shut down live sessions. Idempotent."""
        was_running = self.is_running()
        self._running.clear()

        with self._lock:
            sock, self.server_socket = self.server_socket, None
            clients = list(self._clients)
            threads = list(self._threads)

        if sock is not None:
            try:
                sock.close()
            except OSError as e:
                logger.warning("listener_close_failed", error=str(e))

        # shutting the sockets down makes blocked recv() calls return at once
        for client in clients:
            try:
                client.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass

        current = threading.current_thread()
        for thread in threads:
            if thread is not current:
                thread.join(timeout=join_timeout_sec)

        if was_running:
            self.sink.record("info", "server_stopped", interrupted_sessions=len(clients))

    def _dispatch(self, client_sock: socket.socket, peer: str) -> None:
        # accept() leaves the child blocking unless a default timeout is set
        client_sock.settimeout(self.socket_timeout_sec)
        thread = None
        if self.concurrent:
            thread = threading.Thread(
                target=self.handle_client,
                args=(client_sock, peer),
                name=f"vecsum-session-{peer}",
                daemon=True,
            )
        with self._lock:
            # stop() may already have taken its snapshot of live clients
            if not self.is_running():
                client_sock.close()
                self.sink.record("info", "connection_dropped", peer=peer, reason="server_stopping")
                return
            self._clients.add(client_sock)
            if thread is not None:
                self._threads.add(thread)
                # started under the lock so stop() never joins an unstarted thread
                thread.start()

        if thread is None:
            self.handle_client(client_sock, peer)

    def handle_client(self, client_sock: socket.socket, peer: str) -> None:
        """Run one session to completion; never raises into the accept loop."""
        sink = self.sink.bind(peer=peer) if hasattr(self.sink, "bind") else self.sink
        session = ConnectionSession(
            client_sock,
            self.credentials,
            sink=sink,
            peer=peer,
            processor=VectorBatchProcessor(sink),
        )
        try:
            report = session.run()
            logger.debug("session_report", **report.model_dump(mode="json"))
        except Exception as e:
            logger.error("session_crashed", peer=peer, error=str(e), error_type=type(e).__name__)
            session.close()
        finally:
            with self._lock:
                self._clients.discard(client_sock)
                self._threads.discard(threading.current_thread())
