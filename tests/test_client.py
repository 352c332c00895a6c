import io
import socket
import threading

import pytest

from chatrelay.client import ChatClient
from chatrelay.config import ClientRuntimeConfig


class BlockingStdin:
    """stdin that blocks like a terminal until released, then reports EOF."""

    def __init__(self) -> None:
        self.release = threading.Event()

    def readline(self) -> str:
        self.release.wait(5.0)
        return ""


@pytest.fixture
def server():
    srv = socket.create_server(("127.0.0.1", 0))
    yield srv
    srv.close()


def _client(server: socket.socket, stdin, stdout: io.StringIO) -> ChatClient:
    port = server.getsockname()[1]
    return ChatClient(
        ClientRuntimeConfig(host="127.0.0.1", port=port), stdin=stdin, stdout=stdout
    )


def _read_all(conn: socket.socket) -> bytes:
    conn.settimeout(2.0)
    buf = b""
    while True:
        chunk = conn.recv(4096)
        if not chunk:
            return buf
        buf += chunk


def test_quit_closes_without_sending_the_sentinel(server: socket.socket) -> None:
    stdin = io.StringIO("alice\nhello\n\nquit\nnever sent\n")
    stdout = io.StringIO()
    client = _client(server, stdin, stdout)
    client.connect()
    conn, _ = server.accept()
    try:
        assert client.register()
        client.run()

        assert _read_all(conn) == b"alicehello"
        out = stdout.getvalue()
        assert "Enter your username: " in out
        assert "Start chatting (type 'quit' to exit):" in out
        assert out.endswith("Disconnected.\n")
        assert client.shutdown_requested
    finally:
        conn.close()


def test_remote_eof_stops_both_flows(server: socket.socket) -> None:
    stdin = BlockingStdin()
    stdout = io.StringIO()
    client = _client(server, stdin, stdout)
    client.connect()
    conn, _ = server.accept()
    try:
        conn.sendall(b"bob has joined the chat!")
        conn.close()

        client.run()

        out = stdout.getvalue()
        assert "\r\x1b[Kbob has joined the chat!\nYou: " in out
        assert "Disconnected from server" in out
        assert "Disconnected.\n" in out
        assert not client.send("too late")
    finally:
        stdin.release.set()


def test_register_with_given_name(server: socket.socket) -> None:
    client = _client(server, io.StringIO(""), io.StringIO())
    client.connect()
    conn, _ = server.accept()
    try:
        assert client.register("carol")
        client.close()
        assert _read_all(conn) == b"carol"
    finally:
        conn.close()


def test_register_prompts_again_after_blank_name(server: socket.socket) -> None:
    stdout = io.StringIO()
    client = _client(server, io.StringIO("\nalice\n"), stdout)
    client.connect()
    conn, _ = server.accept()
    try:
        assert client.register()
        assert not client.shutdown_requested
        client.close()
        assert _read_all(conn) == b"alice"
        assert stdout.getvalue().count("Enter your username: ") == 2
    finally:
        conn.close()


def test_register_on_local_eof_requests_shutdown(server: socket.socket) -> None:
    client = _client(server, io.StringIO(""), io.StringIO())
    client.connect()
    conn, _ = server.accept()
    try:
        assert not client.register()
        assert client.shutdown_requested
        client.close()
        assert _read_all(conn) == b""
    finally:
        conn.close()


def test_empty_lines_are_not_sent(server: socket.socket) -> None:
    client = _client(server, io.StringIO(""), io.StringIO())
    client.connect()
    conn, _ = server.accept()
    try:
        assert not client.send("")
        client.close()
        assert _read_all(conn) == b""
    finally:
        conn.close()


def test_run_requires_connection() -> None:
    client = ChatClient(ClientRuntimeConfig(), stdin=io.StringIO(""), stdout=io.StringIO())
    with pytest.raises(RuntimeError):
        client.run()
