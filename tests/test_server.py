"""
Integration tests for VectorServer using the reference client.
"""
import socket
import threading
import time

import pytest

from helpers import u32
from vecsum.client import VectorClient, build_auth_payload, encode_vector
from vecsum.engine.frame_reader import read_exact
from vecsum.server import VectorServer


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


@pytest.fixture
def running_server(credentials, sink):
    servers = []

    def _start(**kwargs):
        server = VectorServer(
            credentials,
            sink=sink,
            host="127.0.0.1",
            port=0,
            accept_timeout_sec=0.05,
            **kwargs,
        )
        server.start()
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        servers.append((server, thread))
        return server

    yield _start

    for server, thread in servers:
        server.stop()
        thread.join(timeout=5)


class TestLifecycle:
    def test_start_and_stop(self, credentials, sink):
        server = VectorServer(credentials, sink=sink, host="127.0.0.1", port=0, accept_timeout_sec=0.05)
        assert server.is_running() is False

        server.start()
        assert server.is_running() is True
        assert server.address[1] != 0

        server.stop()
        server.stop()
        assert server.is_running() is False
        assert sink.events.count("server_stopped") == 1

    def test_serve_forever_requires_start(self, credentials, sink):
        server = VectorServer(credentials, sink=sink, port=0)

        with pytest.raises(RuntimeError, match="not started"):
            server.serve_forever()

    def test_stop_ends_accept_loop(self, running_server, sink):
        server = running_server()

        server.stop()

        assert _wait_for(lambda: "server_loop_exited" in sink.events)

    def test_bind_failure_raises(self, credentials, sink):
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        try:
            server = VectorServer(credentials, sink=sink, host="127.0.0.1", port=blocker.getsockname()[1])
            with pytest.raises(OSError):
                server.start()
            assert server.is_running() is False
        finally:
            blocker.close()

    def test_accept_loop_exits_when_listener_already_released(self, credentials, sink):
        server = VectorServer(credentials, sink=sink, host="127.0.0.1", port=0, accept_timeout_sec=0.05)
        server.start()
        listener, server.server_socket = server.server_socket, None
        try:
            server.serve_forever()
        finally:
            listener.close()
            server.stop()

        assert "server_loop_exited" in sink.events

    @pytest.mark.parametrize("concurrent", [True, False])
    def test_connection_accepted_during_stop_is_closed(self, credentials, sink, stream_pair, concurrent):
        server = VectorServer(credentials, sink=sink, host="127.0.0.1", port=0, concurrent=concurrent)
        server.start()
        server.stop()
        server_side, client_side = stream_pair

        server._dispatch(server_side, "127.0.0.1:6000")

        assert client_side.recv(1) == b""
        assert server._clients == set()
        assert server._threads == set()
        assert "connection_dropped" in sink.events
        assert "session_closed" not in sink.events


class TestProtocolOverTcp:
    @pytest.mark.parametrize("concurrent", [True, False])
    def test_reference_scenario(self, running_server, concurrent):
        server = running_server(concurrent=concurrent)

        with VectorClient(*server.address) as client:
            assert client.authenticate("alice", "secret") is True
            assert client.send_batch([[100, 200], [4294967295]]) == [300, 2147483647]
            assert client.sock.recv(1) == b""

    def test_wrong_password(self, running_server):
        server = running_server()

        with VectorClient(*server.address) as client:
            assert client.authenticate("alice", "wrong") is False
            assert client.sock.recv(1) == b""

    def test_unknown_login_looks_like_mismatch(self, running_server):
        server = running_server()
        replies = []

        for login, password in (("mallory", "secret"), ("alice", "wrong")):
            with VectorClient(*server.address) as client:
                client.send_raw(build_auth_payload(login, password))
                replies.append(client.sock.recv(16))

        assert replies == [b"ERR", b"ERR"]

    def test_invalid_count_closes_connection(self, running_server, sink):
        server = running_server()

        with VectorClient(*server.address) as client:
            assert client.authenticate("alice", "secret")
            client.send_raw(u32(0))
            assert client.sock.recv(1) == b""

        assert _wait_for(lambda: "session_error" in sink.events)

    def test_server_survives_bad_client(self, running_server):
        server = running_server()

        with VectorClient(*server.address) as client:
            client.send_raw(b"garbage")
            assert client.sock.recv(16) == b"ERR"

        with VectorClient(*server.address) as client:
            assert client.authenticate("alice", "secret")
            assert client.send_batch([[1, 2]]) == [3]

    def test_concurrent_clients(self, running_server):
        server = running_server(concurrent=True)
        results = {}

        def worker(n):
            with VectorClient(*server.address) as client:
                client.authenticate("alice", "secret")
                results[n] = client.send_batch([[n, n], [n]])

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert results == {n: [2 * n, n] for n in range(8)}

    def test_stop_interrupts_idle_session(self, running_server, sink):
        server = running_server(concurrent=True)

        client = VectorClient(*server.address)
        client.connect()
        try:
            assert client.authenticate("alice", "secret")
            client.sock.sendall(u32(1))
            # session now blocks waiting for the vector length
            time.sleep(0.1)
            server.stop()
            assert client.sock.recv(1) == b""
        finally:
            client.close()

        assert _wait_for(lambda: "session_closed" in sink.events)

    def test_socket_timeout_ends_stalled_session(self, running_server, sink):
        server = running_server(socket_timeout_sec=0.2)

        with VectorClient(*server.address) as client:
            assert client.authenticate("alice", "secret")
            assert client.sock.recv(1) == b""

        assert _wait_for(lambda: "session_closed" in sink.events)

    def test_split_vector_frame(self, running_server):
        server = running_server()

        with VectorClient(*server.address) as client:
            assert client.authenticate("alice", "secret")
            frame = u32(1) + encode_vector([7, 8, 9])
            for i in range(len(frame)):
                client.sock.sendall(frame[i:i + 1])
            assert read_exact(client.sock, 4) == (24).to_bytes(4, "little")
