"""Line delivery for the chat server: replies, broadcasts and whispers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .constants import KIND_SYSTEM, KIND_WHISPER, SERVER_USER

if TYPE_CHECKING:
    from .service import ChatService
    from .session import ClientSession


class MessageHelper:
    """
    Helper methods for delivering lines to sessions.

    Handles:
    - Best-effort single-session sends (replies, errors)
    - Broadcast fan-out over a snapshot of the client table
    - Whisper delivery between two named sessions
    - Mirroring broadcasts to the operator console and the history log

    No shared lock is ever held across a socket write here.
    """

    def __init__(self, hub: ChatService) -> None:
        self.hub = hub
        self.log = logging.getLogger("linechatd.server")

    def send(self, sess: ClientSession, text: str) -> bool:
        """Write one line to a session; failures are logged and swallowed.

        A failed peer is noticed by its own read loop, not here.
        """
        try:
            sess.send_line(text)
        except OSError as e:
            self.log.debug("Send failed peer=%s err=%s", sess.describe(), e)
            return False
        self.hub.stats_manager.inc("lines_out")
        return True

    def reply(self, sess: ClientSession, text: str) -> bool:
        return self.send(sess, text)

    def error(self, sess: ClientSession, text: str) -> bool:
        self.hub.stats_manager.inc("errors_sent")
        return self.send(sess, f"ERROR: {text}")

    def broadcast(
        self,
        text: str,
        *,
        exclude: ClientSession | None = None,
        kind: str = KIND_SYSTEM,
        origin: str = SERVER_USER,
        content: str | None = None,
        record: bool = True,
    ) -> int:
        """
        Deliver `text` to every registered session except `exclude`.

        Returns the number of sessions the line was written to. Sessions that
        join or leave while the fan-out is running may or may not receive it.
        """
        if record:
            self.hub.history.append(origin, content if content is not None else text, kind)

        self.hub.console_print(text)

        recipients = self.hub.session_manager.snapshot(exclude=exclude)
        delivered = 0
        for sess in recipients:
            if self.send(sess, text):
                delivered += 1

        self.hub.stats_manager.inc("broadcasts")
        return delivered

    def whisper(self, sender: ClientSession, target_name: str, message: str) -> bool:
        target = self.hub.session_manager.find_by_username(target_name)
        if target is None:
            self.reply(sender, f"User '{target_name}' not found.")
            return False

        self.hub.history.append(
            sender.username, f"to {target.username}: {message}", KIND_WHISPER
        )
        self.send(target, f"[whisper from {sender.username}]: {message}")
        self.reply(sender, f"[whisper to {target.username}]: {message}")
        self.hub.stats_manager.inc("whispers")
        return True
