"""Terminal client for linechatd."""

from __future__ import annotations

import argparse
import random
import socket
import sys
import threading
from typing import TextIO

from .codec import LineReader, encode_line
from .constants import DEFAULT_PORT, KICK_SENTINEL

QUIT_COMMAND = "!quit"


def parse_server_line(line: str) -> tuple[bool, str]:
    """Classify a received line.

    Returns (kicked, text): kicked is True for the out-of-band kick notice, in
    which case text is the reason.
    """
    if line.startswith(KICK_SENTINEL):
        return True, line[len(KICK_SENTINEL):]
    return False, line


class ChatClient:
    def __init__(self, host: str, port: int, username: str, *, out: TextIO | None = None) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.out = out if out is not None else sys.stdout
        self.sock: socket.socket | None = None

    def connect(self) -> None:
        self.sock = socket.create_connection((self.host, self.port))
        self._print(f"[client] Connected to {self.host}:{self.port}")
        self.send(f"!username {self.username}")

    def send(self, line: str) -> None:
        if self.sock is None:
            raise RuntimeError("not connected")
        self.sock.sendall(encode_line(line))

    def close(self) -> None:
        if self.sock is None:
            return
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()

    def receive_loop(self) -> bool:
        """Print lines until the server closes. Returns True if we were kicked."""
        if self.sock is None:
            raise RuntimeError("not connected")
        reader = LineReader(self.sock)
        try:
            while True:
                line = reader.readline()
                if line is None:
                    self._print("[client] Connection closed by server.")
                    return False
                kicked, text = parse_server_line(line)
                if kicked:
                    self._print(f"[server] {text}")
                    self._print("[client] Disconnected.")
                    return True
                self._print(text)
        except OSError:
            return False

    def input_loop(self, stream: TextIO) -> None:
        """Forward typed lines to the server until EOF or !quit."""
        try:
            for raw in stream:
                line = raw.rstrip("\r\n")
                if line.strip().lower() == QUIT_COMMAND:
                    self._print("[client] Bye.")
                    break
                self.send(line)
        except OSError as e:
            self._print(f"[client] Send failed: {e}")
        finally:
            self.close()

    def _print(self, text: str) -> None:
        self.out.write(text + "\n")
        self.out.flush()


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="linechat", description="Connect to a linechatd server")
    p.add_argument("host", nargs="?", default="127.0.0.1")
    p.add_argument("port", nargs="?", type=int, default=DEFAULT_PORT)
    p.add_argument("--username", default=None, help="Username to claim (prompted if omitted)")
    return p


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    username = args.username
    if username is None:
        username = input("Enter desired username: ").strip()
    if not username:
        username = f"User{random.randint(1000, 9999)}"

    client = ChatClient(args.host, args.port, username)
    try:
        client.connect()
    except OSError as e:
        print(f"[client] Socket error: {e}", file=sys.stderr)
        raise SystemExit(1) from e

    # Typing happens on a daemon thread so a kick can end the process while
    # input() is still blocked.
    threading.Thread(
        target=client.input_loop, args=(sys.stdin,), name="linechat-input", daemon=True
    ).start()

    kicked = client.receive_loop()
    client.close()
    raise SystemExit(2 if kicked else 0)


if __name__ == "__main__":
    main()
