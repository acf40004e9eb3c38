from __future__ import annotations

import enum
import logging
import socket
import threading
import time
from dataclasses import dataclass, field
from typing import Any

from .codec import encode_line
from .registry import RenameResult, UsernameRegistry
from .util import fold_username


class SessionState(enum.Enum):
    AWAITING_USERNAME = "awaiting_username"
    ACTIVE = "active"
    TERMINATED = "terminated"


@dataclass(eq=False)
class ClientSession:
    """Per-connection record. Identity is the underlying socket."""

    sock: socket.socket
    address: Any = None
    username: str = ""
    is_moderator: bool = False
    connected_at: float = field(default_factory=time.time)
    state: SessionState = SessionState.AWAITING_USERNAME
    _write_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def send_line(self, text: str) -> None:
        """Write one line to the peer. Raises OSError on transport failure."""
        payload = encode_line(text)
        # Keeps concurrent broadcasters from interleaving partial lines.
        with self._write_lock:
            self.sock.sendall(payload)

    def describe(self) -> str:
        name = self.username or "-"
        if isinstance(self.address, tuple) and len(self.address) >= 2:
            return f"{name}@{self.address[0]}:{self.address[1]}"
        return name


class SessionManager:
    """
    Owns the client table and the username registry.

    This class is responsible for:
    - Registering sessions at accept time and removing them exactly once
    - Claiming, renaming and releasing usernames consistently with the table
    - Case-insensitive lookups by username
    - Moderator flag changes

    The table lock is always taken before the registry's own lock.
    """

    def __init__(self, registry: UsernameRegistry | None = None) -> None:
        self.log = logging.getLogger("linechatd.session")
        self.registry = registry if registry is not None else UsernameRegistry()
        self._lock = threading.RLock()
        self.sessions: dict[socket.socket, ClientSession] = {}

    def on_connection_accepted(
        self, sock: socket.socket, address: Any = None
    ) -> ClientSession:
        sess = ClientSession(sock=sock, address=address)
        with self._lock:
            self.sessions[sock] = sess
        self.log.debug("Session created peer=%s", sess.describe())
        return sess

    def claim_username(self, sess: ClientSession, name: str) -> bool:
        """Claim `name` for a session that has none yet."""
        with self._lock:
            if self.sessions.get(sess.sock) is not sess:
                return False
            if not self.registry.claim(name):
                return False
            sess.username = name
            sess.state = SessionState.ACTIVE
            return True

    def rename(self, sess: ClientSession, new_name: str) -> RenameResult:
        with self._lock:
            if self.sessions.get(sess.sock) is not sess:
                # Already torn down; nothing left to rename.
                return RenameResult.NAME_TAKEN
            result = self.registry.rename(sess.username, new_name)
            if result is RenameResult.OK:
                sess.username = new_name
            return result

    def remove(self, sess: ClientSession) -> bool:
        """
        Deregister a session and release its username.

        Returns True only for the call that actually removed it, which makes
        the caller the one responsible for the rest of the terminal actions.
        """
        with self._lock:
            if self.sessions.get(sess.sock) is not sess:
                return False
            del self.sessions[sess.sock]
            sess.state = SessionState.TERMINATED
            if sess.username:
                self.registry.release(sess.username)
            return True

    def snapshot(self, exclude: ClientSession | None = None) -> list[ClientSession]:
        """Copy of the current sessions, safe to iterate without the lock."""
        with self._lock:
            return [s for s in self.sessions.values() if s is not exclude]

    def find_by_username(self, name: str) -> ClientSession | None:
        key = fold_username(name)
        with self._lock:
            for sess in self.sessions.values():
                if sess.username and fold_username(sess.username) == key:
                    return sess
        return None

    def toggle_moderator(self, name: str) -> ClientSession | None:
        """Flip the moderator flag of the named session. None if not found."""
        with self._lock:
            sess = self.find_by_username(name)
            if sess is None:
                return None
            sess.is_moderator = not sess.is_moderator
            return sess

    def is_moderator(self, sess: ClientSession) -> bool:
        with self._lock:
            return bool(sess.is_moderator)

    def usernames(self) -> list[str]:
        return self.registry.names()

    def moderators(self) -> list[str]:
        with self._lock:
            return sorted(
                s.username for s in self.sessions.values() if s.is_moderator and s.username
            )

    def get_stats(self) -> dict[str, int]:
        """Session counts for monitoring."""
        with self._lock:
            total = len(self.sessions)
            named = sum(1 for s in self.sessions.values() if s.username)
            moderators = sum(1 for s in self.sessions.values() if s.is_moderator)

        return {
            "total": total,
            "named": named,
            "moderators": moderators,
            "claimed_names": len(self.registry),
        }
