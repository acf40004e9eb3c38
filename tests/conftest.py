import io
import socket

import pytest

from linechatd.codec import LineReader, encode_line
from linechatd.config import ChatServerConfig
from linechatd.service import ChatService


class LineClient:
    """Minimal blocking client used to drive the server in tests."""

    def __init__(self, address: tuple[str, int], timeout: float = 5.0) -> None:
        self.sock = socket.create_connection(address, timeout=timeout)
        self.reader = LineReader(self.sock)

    def send(self, line: str) -> None:
        self.sock.sendall(encode_line(line))

    def readline(self) -> str | None:
        return self.reader.readline()

    def read_until(self, expected: str) -> list[str]:
        """Read lines up to and including `expected`; returns everything read."""
        seen: list[str] = []
        while True:
            line = self.readline()
            if line is None:
                raise AssertionError(f"connection closed before {expected!r}; saw {seen!r}")
            seen.append(line)
            if line == expected:
                return seen

    def read_until_prefix(self, prefix: str) -> str:
        while True:
            line = self.readline()
            if line is None:
                raise AssertionError(f"connection closed before line starting {prefix!r}")
            if line.startswith(prefix):
                return line

    def at_eof(self) -> bool:
        try:
            while True:
                if self.readline() is None:
                    return True
        except ConnectionResetError:
            return True

    def login(self, name: str) -> "LineClient":
        self.send(f"!username {name}")
        self.read_until(f"OK: Welcome {name}!")
        self.read_until("Type !commands for help.")
        return self

    def close(self) -> None:
        self.sock.close()


@pytest.fixture
def console() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def service(tmp_path, console):
    cfg = ChatServerConfig(host="127.0.0.1", port=0, history_dir=str(tmp_path / "history"))
    svc = ChatService(cfg, console=console)
    svc.start()
    yield svc
    svc.stop()


@pytest.fixture
def connect(service):
    clients: list[LineClient] = []

    def make(name: str | None = None) -> LineClient:
        client = LineClient(service.address)
        clients.append(client)
        client.read_until(service.config.greeting)
        if name is not None:
            client.login(name)
        return client

    yield make
    for c in clients:
        c.close()
