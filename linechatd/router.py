from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .constants import COMMAND_SIGIL, HANDSHAKE_COMMAND, KIND_CHAT
from .session import SessionState
from .util import normalize_username

if TYPE_CHECKING:
    from .service import ChatService
    from .session import ClientSession


class MessageRouter:
    """
    Per-connection protocol state machine.

    AWAITING_USERNAME: only `!username <name>` is accepted. Invalid names are
    retried; a name already in use ends the connection.
    ACTIVE: command lines go to the CommandHandler, other non-blank lines are
    broadcast as chat.
    TERMINATED: nothing is routed.
    """

    def __init__(self, hub: ChatService) -> None:
        self.hub = hub
        self.log = logging.getLogger("linechatd.router")

    def route_line(self, sess: ClientSession, line: str) -> None:
        self.hub.stats_manager.inc("lines_in")

        if sess.state is SessionState.TERMINATED:
            return

        if sess.state is SessionState.AWAITING_USERNAME:
            self._handle_handshake(sess, line)
            return

        if not line.strip():
            return

        if line.startswith(COMMAND_SIGIL):
            self.hub.command_handler.handle_client_command(sess, line)
            return

        self.hub.stats_manager.inc("chat_relayed")
        self.hub.message_helper.broadcast(
            f"[{sess.username}]: {line}",
            kind=KIND_CHAT,
            origin=sess.username,
            content=line,
        )

    def _handle_handshake(self, sess: ClientSession, line: str) -> None:
        helper = self.hub.message_helper

        parts = line.strip().split(None, 1)
        if len(parts) < 2 or parts[0].lower() != COMMAND_SIGIL + HANDSHAKE_COMMAND:
            helper.error(sess, f"You must start with {COMMAND_SIGIL}{HANDSHAKE_COMMAND} <name>")
            return

        try:
            name = normalize_username(parts[1])
        except ValueError as e:
            helper.error(sess, f"Invalid username ({e}).")
            return

        if not self.hub.session_manager.claim_username(sess, name):
            self.log.info("Handshake rejected, name in use peer=%s name=%r", sess.describe(), name)
            helper.error(sess, "Username already in use. Disconnecting.")
            self.hub.disconnect(sess, notify=False)
            return

        self.log.info("User joined peer=%s", sess.describe())
        helper.reply(sess, f"OK: Welcome {name}!")
        helper.broadcast(f"* {name} joined the chat *", exclude=sess)
        helper.reply(sess, f"Type {COMMAND_SIGIL}commands for help.")
