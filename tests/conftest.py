import socket
import threading

import pytest

from fake_server import FakeRedisServer
from respclient import CommandClient, Connection


@pytest.fixture
def server():
    fake = FakeRedisServer().start()
    yield fake
    fake.stop()


@pytest.fixture
def connect(server):
    """Factory for connections to the test server; all are closed afterwards."""
    opened = []

    def _connect() -> Connection:
        connection = Connection(host=server.host, port=server.port, socket_timeout=5)
        connection.connect()
        opened.append(connection)
        return connection

    yield _connect
    for connection in opened:
        connection.close()


@pytest.fixture
def client(connect):
    return CommandClient(connect())


class ScriptedPeer:
    """The server side of a socketpair, answering with canned bytes."""

    def __init__(self, sock: socket.socket):
        self.sock = sock

    def reply(self, payload: bytes) -> None:
        self.sock.sendall(payload)

    def read_exactly(self, n: int) -> bytes:
        data = b""
        while len(data) < n:
            chunk = self.sock.recv(n - len(data))
            if not chunk:
                break
            data += chunk
        return data

    def close(self) -> None:
        self.sock.close()


@pytest.fixture
def scripted(monkeypatch):
    """
    A Connection wired to a ScriptedPeer through socket.socketpair().

    Returns (connection, peer); the connection is already connected.
    """
    client_sock, server_sock = socket.socketpair()
    monkeypatch.setattr(socket, "create_connection", lambda *args, **kwargs: client_sock)

    connection = Connection(host="scripted", port=0, socket_timeout=5)
    connection.connect()
    peer = ScriptedPeer(server_sock)
    yield connection, peer
    connection.close()
    peer.close()


def _run_in_background(target, *args):
    """Run target in a thread, returning (thread, outcome dict)."""
    outcome = {}

    def _run():
        try:
            outcome["result"] = target(*args)
        except Exception as e:
            outcome["error"] = e

    thread = threading.Thread(target=_run)
    thread.start()
    return thread, outcome


@pytest.fixture
def background():
    return _run_in_background
