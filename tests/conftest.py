"""Shared fixtures for vecsum tests."""
import socket

import pytest

from helpers import RecordingSink
from vecsum.engine.credentials import CredentialStore


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def credentials():
    return CredentialStore([("alice", "secret"), ("", "blank")])


@pytest.fixture
def stream_pair():
    server_side, client_side = socket.socketpair()
    server_side.settimeout(5.0)
    client_side.settimeout(5.0)
    yield server_side, client_side
    server_side.close()
    client_side.close()
