"""Operator console: moderator promotion, kicks and shutdown."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, TextIO

from .constants import COMMAND_SIGIL, DEFAULT_ADMIN_KICK_REASON, KIND_COMMAND, SERVER_USER

if TYPE_CHECKING:
    from .service import ChatService

USAGE = "Commands: mods, mod <user>, kick <user> [reason], stats, shutdown"


class AdminConsole:
    """Reads operator commands from a control stream and runs them one at a time."""

    def __init__(self, hub: ChatService) -> None:
        self.hub = hub
        self.log = logging.getLogger("linechatd.admin")

    def run(self, stream: TextIO) -> None:
        """Serve commands until shutdown or end of input."""
        self.hub.console_print(USAGE)
        while self.hub.is_running:
            line = stream.readline()
            if not line:
                self.log.info("Admin console input closed")
                return
            try:
                self.execute(line)
            except Exception:
                self.log.exception("Admin command failed: %r", line.strip())

    def execute(self, line: str) -> bool:
        """Run one console command. Returns False once shutdown was requested."""
        parts = line.strip().split(None, 2)
        if not parts:
            return True

        cmd = parts[0].lower()
        if cmd.startswith(COMMAND_SIGIL):
            cmd = cmd[len(COMMAND_SIGIL):]

        out = self.hub.console_print

        if cmd == "mods":
            mods = self.hub.session_manager.moderators()
            out("Moderators: " + (", ".join(mods) if mods else "(none)"))
            return True

        if cmd == "mod":
            if len(parts) < 2:
                out("Usage: mod <username>")
                return True
            sess = self.hub.toggle_moderator(parts[1])
            if sess is None:
                out(f"No such user '{parts[1]}'.")
                return True
            self.hub.history.append(SERVER_USER, line.strip(), KIND_COMMAND)
            return True

        if cmd == "kick":
            if len(parts) < 2:
                out("Usage: kick <username> [reason]")
                return True
            reason = parts[2] if len(parts) == 3 else DEFAULT_ADMIN_KICK_REASON
            if not self.hub.kick(parts[1], reason, kicked_by=SERVER_USER):
                self.log.warning("Kick failed; user %r not found", parts[1])
                out(f"Kick failed; user '{parts[1]}' not found.")
                return True
            self.hub.history.append(SERVER_USER, line.strip(), KIND_COMMAND)
            return True

        if cmd == "stats":
            out(self.hub.stats_manager.format_stats())
            return True

        if cmd == "shutdown":
            out("Shutting down...")
            self.hub.history.append(SERVER_USER, "shutdown", KIND_COMMAND)
            self.hub.stop()
            return False

        if cmd == "help":
            out(USAGE)
            return True

        out(f"Unknown server command. {USAGE}")
        return True
