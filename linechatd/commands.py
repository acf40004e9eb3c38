"""Command handling for chat clients."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from . import __version__
from .constants import (
    COMMAND_SIGIL,
    DEFAULT_MOD_KICK_REASON,
    HANDSHAKE_COMMAND,
    HISTORY_REPLY_COUNT,
    KIND_COMMAND,
)
from .registry import RenameResult
from .util import normalize_username

if TYPE_CHECKING:
    from .service import ChatService
    from .session import ClientSession

USER_COMMANDS = (
    "!who",
    "!about",
    "!whisper <user> <msg>",
    "!w <user> <msg>",
    "!user <newname>",
    "!ping",
    "!stats",
)
MODERATOR_COMMANDS = ("!kick <user> [reason]", "!history")


class CommandHandler:
    """Dispatches `!command` lines from active sessions."""

    def __init__(self, hub: ChatService) -> None:
        self.hub = hub
        self.log = logging.getLogger("linechatd.commands")

    def handle_client_command(self, sess: ClientSession, text: str) -> bool:
        """Handle one command line from an active session.

        Returns True if the command word was recognized.
        """
        helper = self.hub.message_helper
        cmdline = text.strip()
        if not cmdline.startswith(COMMAND_SIGIL):
            return False

        # Command word plus at most two arguments; the last keeps its spaces.
        parts = cmdline[len(COMMAND_SIGIL):].split(None, 2)
        if not parts:
            helper.reply(sess, "Unknown command. Try !commands")
            return False

        cmd = parts[0].lower()
        self.hub.stats_manager.inc("commands")

        if cmd == "commands":
            helper.reply(sess, "Commands: " + ", ".join(USER_COMMANDS))
            if self.hub.session_manager.is_moderator(sess):
                helper.reply(sess, "Moderator: " + ", ".join(MODERATOR_COMMANDS))
            return True

        if cmd == "who":
            names = self.hub.session_manager.usernames()
            helper.reply(
                sess, "Connected users: " + (", ".join(names) if names else "(none)")
            )
            return True

        if cmd == "about":
            helper.reply(sess, self.about_text())
            return True

        if cmd in ("whisper", "w"):
            if len(parts) < 3:
                helper.reply(sess, "Usage: !whisper <username> <message>")
                return True
            helper.whisper(sess, parts[1], parts[2])
            return True

        if cmd == "user":
            if len(parts) < 2:
                helper.reply(sess, "Usage: !user <newname>")
                return True
            self._rename(sess, parts[1])
            return True

        if cmd == "ping":
            helper.reply(sess, "pong")
            return True

        if cmd == "stats":
            helper.reply(sess, self.hub.stats_manager.format_summary())
            return True

        if cmd == HANDSHAKE_COMMAND:
            helper.error(sess, "Username already set. Use !user <newname> to change it.")
            return True

        # Moderator-only commands
        if cmd == "kick":
            if not self.hub.session_manager.is_moderator(sess):
                helper.error(sess, "Only moderators can use !kick")
                return True
            if len(parts) < 2:
                helper.reply(sess, "Usage: !kick <username> [reason]")
                return True
            reason = parts[2] if len(parts) == 3 else DEFAULT_MOD_KICK_REASON
            target = parts[1]
            if not self.hub.kick(target, reason, kicked_by=sess.username):
                helper.error(sess, f"User '{target}' not found.")
                return True
            self.hub.history.append(sess.username, cmdline, KIND_COMMAND)
            return True

        if cmd == "history":
            if not self.hub.session_manager.is_moderator(sess):
                helper.error(sess, "Only moderators can use !history")
                return True
            records = self.hub.history.recent(HISTORY_REPLY_COUNT)
            if not records:
                helper.reply(sess, "History: (empty)")
                return True
            helper.reply(sess, f"History (last {len(records)}):")
            for record in records:
                helper.reply(sess, record.render())
            return True

        helper.reply(sess, "Unknown command. Try !commands")
        return False

    def about_text(self) -> str:
        cfg = self.hub.config
        if cfg.about_text:
            return cfg.about_text
        return f"{cfg.server_name} {__version__}: line-oriented multi-user chat server"

    def _rename(self, sess: ClientSession, raw_name: str) -> None:
        helper = self.hub.message_helper
        try:
            new_name = normalize_username(raw_name)
        except ValueError as e:
            helper.error(sess, f"Invalid username ({e}).")
            return

        old_name = sess.username
        result = self.hub.session_manager.rename(sess, new_name)
        if result is RenameResult.NAME_TAKEN:
            helper.error(sess, "Username already in use.")
            return

        self.log.info("Rename old=%r new=%r", old_name, new_name)
        helper.broadcast(f"* {old_name} is now known as {new_name} *")
