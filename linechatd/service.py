from __future__ import annotations

import logging
import signal
import socket
import sys
import threading
import time
from typing import Any, TextIO

from .codec import LineReader
from .commands import CommandHandler
from .config import ChatServerConfig
from .constants import KICK_SENTINEL, REASON_LEFT, REASON_SHUTDOWN
from .history import HistoryLog, run_log_path
from .messages import MessageHelper
from .registry import UsernameRegistry
from .router import MessageRouter
from .session import ClientSession, SessionManager
from .stats import StatsManager
from .util import expand_path

_DRAIN_MAX_READS = 16


class ChatService:
    def __init__(
        self,
        config: ChatServerConfig,
        *,
        registry: UsernameRegistry | None = None,
        history: HistoryLog | None = None,
        console: TextIO | None = None,
    ) -> None:
        self.config = config
        self.log = logging.getLogger("linechatd.server")

        self._shutdown = threading.Event()
        self._console = console if console is not None else sys.stdout
        self._console_lock = threading.Lock()

        # Client table + username registry; the only state shared by every
        # connection thread and the admin console.
        self.session_manager = SessionManager(registry)

        self.stats_manager = StatsManager(self)
        self.history = history if history is not None else self._make_history()
        self.message_helper = MessageHelper(self)
        self.command_handler = CommandHandler(self)
        self.router = MessageRouter(self)

        self._listener: socket.socket | None = None
        self._accept_thread: threading.Thread | None = None

    def _make_history(self) -> HistoryLog:
        sink: str | None = None
        if self.config.history_file:
            sink = expand_path(self.config.history_file)
        elif self.config.history_dir:
            sink = str(run_log_path(expand_path(self.config.history_dir)))
        return HistoryLog(self.config.history_capacity, sink_path=sink)

    @property
    def is_running(self) -> bool:
        return self._listener is not None and not self._shutdown.is_set()

    @property
    def address(self) -> tuple[str, int]:
        if self._listener is None:
            raise RuntimeError("service is not started")
        host, port = self._listener.getsockname()[:2]
        return host, port

    def console_print(self, text: str) -> None:
        """Write to the operator console."""
        with self._console_lock:
            try:
                self._console.write(text + "\n")
                self._console.flush()
            except (OSError, ValueError):
                self.log.debug("Console write failed", exc_info=True)

    def start(self) -> None:
        if self._listener is not None:
            return

        listener = socket.create_server((self.config.host, int(self.config.port)))
        self._listener = listener
        self.stats_manager.set_start_time()

        self._accept_thread = threading.Thread(
            target=self._accept_loop, name="linechatd-accept", daemon=True
        )
        self._accept_thread.start()

        host, port = self.address
        self.log.info("Listening on %s:%s", host, port)
        if self.history.sink_path is not None:
            self.log.info("History sink %s", self.history.sink_path)

    def run_forever(self) -> None:
        if self._listener is None:
            self.start()

        signal.signal(signal.SIGINT, lambda *_: self.stop())
        signal.signal(signal.SIGTERM, lambda *_: self.stop())

        while not self._shutdown.wait(0.25):
            pass

    def stop(self) -> None:
        """Orderly shutdown: stop accepting, then terminate every live session."""
        if self._shutdown.is_set():
            return
        self._shutdown.set()
        self.log.info("Shutting down")

        listener = self._listener
        if listener is not None:
            try:
                # Wakes a thread blocked in accept(); close() alone does not.
                listener.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            listener.close()

        for sess in self.session_manager.snapshot():
            self.disconnect(sess, REASON_SHUTDOWN)

        self.history.close()

    def _accept_loop(self) -> None:
        listener = self._listener
        if listener is None:
            return
        while not self._shutdown.is_set():
            try:
                sock, address = listener.accept()
            except OSError:
                if self._shutdown.is_set():
                    break
                self.log.warning("Accept failed", exc_info=True)
                continue

            self.stats_manager.inc("connections")
            sess = self.session_manager.on_connection_accepted(sock, address)
            self.log.info("Incoming connection peer=%s", sess.describe())

            threading.Thread(
                target=self._client_loop,
                args=(sess,),
                name=f"linechatd-client-{address[1] if isinstance(address, tuple) else '?'}",
                daemon=True,
            ).start()

    def serve_connection(self, sock: socket.socket, address: Any = None) -> ClientSession:
        """Register an already-connected socket and serve it on this thread."""
        sess = self.session_manager.on_connection_accepted(sock, address)
        self._client_loop(sess)
        return sess

    def _client_loop(self, sess: ClientSession) -> None:
        reader = LineReader(sess.sock, max_line_bytes=self.config.max_line_bytes)
        try:
            if self.config.greeting:
                self.message_helper.send(sess, self.config.greeting)

            while not self._shutdown.is_set():
                line = reader.readline()
                if line is None:
                    break
                self.router.route_line(sess, line)
                if not self.is_session_live(sess):
                    break
        except OSError as e:
            self.log.info("Connection lost peer=%s err=%s", sess.describe(), e)
        except Exception:
            self.log.exception("Client loop error peer=%s", sess.describe())
        finally:
            self.disconnect(sess, REASON_LEFT)

    def is_session_live(self, sess: ClientSession) -> bool:
        return self.session_manager.sessions.get(sess.sock) is sess

    def disconnect(
        self, sess: ClientSession, reason: str = REASON_LEFT, *, notify: bool = True
    ) -> bool:
        """
        Run a session's terminal actions.

        Safe to call any number of times from any thread; only the first call
        has an effect. Returns True for that call.
        """
        if not self.session_manager.remove(sess):
            return False

        self._close_socket(sess.sock)

        self.log.info(
            "Session closed peer=%s reason=%r connected_s=%.1f",
            sess.describe(),
            reason,
            time.time() - sess.connected_at,
        )

        if notify and sess.username:
            self.message_helper.broadcast(f"* {sess.username} {reason} *")
        return True

    def _close_socket(self, sock: socket.socket) -> None:
        try:
            # Queues FIN behind any pending output (the kick notice) and wakes
            # the session thread if it is blocked in recv().
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

        # close() with unread input answers the peer with a reset, which can
        # destroy lines it has not read yet.
        try:
            sock.setblocking(False)
            for _ in range(_DRAIN_MAX_READS):
                if not sock.recv(4096):
                    break
        except OSError:
            pass

        try:
            sock.close()
        except OSError:
            pass

    def kick(self, username: str, reason: str, *, kicked_by: str) -> bool:
        """Kick a session by username. Returns False if no live session matched."""
        target = self.session_manager.find_by_username(username)
        if target is None:
            return False

        try:
            target.send_line(KICK_SENTINEL + reason)
        except OSError:
            pass

        if not self.disconnect(target, f"was kicked by {kicked_by} ({reason})"):
            # Lost a race with its own disconnect or another kick.
            return False

        self.stats_manager.inc("kicks")
        self.log.info("Kicked user=%r by=%r reason=%r", target.username, kicked_by, reason)
        return True

    def toggle_moderator(self, username: str) -> ClientSession | None:
        sess = self.session_manager.toggle_moderator(username)
        if sess is None:
            return None

        status = "now a moderator" if sess.is_moderator else "no longer a moderator"
        self.log.info("Moderator change user=%r moderator=%s", sess.username, sess.is_moderator)
        self.message_helper.broadcast(f"* {sess.username} is {status} *")
        return sess
