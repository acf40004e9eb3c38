from __future__ import annotations

import socket

from .constants import LINE_ENCODING, LINE_TERMINATOR


class FrameError(OSError):
    """Raised when a peer sends a line longer than the configured limit."""


def encode_line(text: str) -> bytes:
    return (text + LINE_TERMINATOR).encode(LINE_ENCODING)


def decode_lines(buf: bytes) -> tuple[list[str], bytes]:
    """Split complete lines off the front of `buf`.

    Returns the decoded lines (terminator and carriage returns removed) and the
    unterminated remainder.
    """
    *complete, rest = buf.split(b"\n")
    lines = [
        raw.replace(b"\r", b"").decode(LINE_ENCODING, "replace") for raw in complete
    ]
    return lines, rest


class LineReader:
    """Blocking line reader over a connected socket."""

    def __init__(
        self, sock: socket.socket, *, max_line_bytes: int = 0, chunk_size: int = 4096
    ) -> None:
        self.sock = sock
        self.max_line_bytes = int(max_line_bytes)
        self.chunk_size = int(chunk_size)
        self._pending: list[str] = []
        self._buf = b""
        self._eof = False

    def readline(self) -> str | None:
        """Return the next line, or None once the peer has closed."""
        while not self._pending:
            if self._eof:
                return None

            data = self.sock.recv(self.chunk_size)
            if not data:
                self._eof = True
                # A final unterminated line still counts.
                if self._buf:
                    tail = self._buf.replace(b"\r", b"")
                    self._buf = b""
                    if tail:
                        return tail.decode(LINE_ENCODING, "replace")
                return None

            lines, self._buf = decode_lines(self._buf + data)
            self._pending.extend(lines)

            if self.max_line_bytes > 0 and len(self._buf) > self.max_line_bytes:
                raise FrameError(
                    f"line exceeds {self.max_line_bytes} bytes without a terminator"
                )

        return self._pending.pop(0)
