"""Statistics tracking and reporting for the chat server."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

from .util import format_uptime

if TYPE_CHECKING:
    from .service import ChatService


class StatsManager:
    """
    Tracks uptime and lifetime counters.

    Counters:
    - Connections accepted
    - Lines in/out
    - Chat lines relayed, broadcasts, whispers
    - Commands handled, errors sent
    - Kicks
    """

    def __init__(self, hub: ChatService) -> None:
        self.hub = hub
        self._lock = threading.Lock()

        self.started_monotonic: float | None = None

        self._counters: dict[str, int] = {
            "connections": 0,
            "lines_in": 0,
            "lines_out": 0,
            "chat_relayed": 0,
            "broadcasts": 0,
            "whispers": 0,
            "commands": 0,
            "errors_sent": 0,
            "kicks": 0,
        }

    def set_start_time(self) -> None:
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        with self._lock:
            self._counters[key] = int(self._counters.get(key, 0)) + int(delta)

    def uptime_s(self) -> float:
        if self.started_monotonic is None:
            return 0.0
        return time.monotonic() - self.started_monotonic

    def format_summary(self) -> str:
        """One-line reply for the client `stats` command."""
        st = self.hub.session_manager.get_stats()
        return (
            f"Server Stats: {st['named']} online users, "
            f"{st['moderators']} moderators, "
            f"uptime: {format_uptime(self.uptime_s())}"
        )

    def format_stats(self) -> str:
        """Detailed multi-line report for the operator console."""
        from . import __version__

        st = self.hub.session_manager.get_stats()
        with self._lock:
            c = dict(self._counters)

        lines: list[str] = []
        lines.append(f"linechatd {__version__} stats")
        lines.append(f"uptime={format_uptime(self.uptime_s())}")
        lines.append(
            f"clients_total={st['total']} "
            f"clients_named={st['named']} "
            f"moderators={st['moderators']}"
        )
        lines.append(f"history={len(self.hub.history)}/{self.hub.history.capacity}")
        lines.append(
            "io: connections={} lines_in={} lines_out={}".format(
                c.get("connections", 0),
                c.get("lines_in", 0),
                c.get("lines_out", 0),
            )
        )
        lines.append(
            "events: chat={} broadcasts={} whispers={} commands={} errors_sent={} kicks={}".format(
                c.get("chat_relayed", 0),
                c.get("broadcasts", 0),
                c.get("whispers", 0),
                c.get("commands", 0),
                c.get("errors_sent", 0),
                c.get("kicks", 0),
            )
        )
        return "\n".join(lines)
