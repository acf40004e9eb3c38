"""Bounded in-memory chat history with an append-only text sink."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TextIO

from .constants import HISTORY_CAPACITY


@dataclass(frozen=True)
class ChatMessage:
    timestamp: float
    username: str
    content: str
    kind: str

    def render(self) -> str:
        ts = datetime.fromtimestamp(self.timestamp).strftime("%Y-%m-%d %H:%M:%S")
        return f"{ts} [{self.kind}] {self.username}: {self.content}"


def run_log_path(directory: str | os.PathLike, started: float | None = None) -> Path:
    """Sink file name for one server run."""
    stamp = datetime.fromtimestamp(started or time.time()).strftime("%Y%m%d-%H%M%S")
    return Path(directory) / f"chat-{stamp}.log"


class HistoryLog:
    """
    Ring of recent ChatMessage records plus a durable sink.

    Ring and sink share one lock. Sink failures are logged and otherwise
    ignored; the ring is always updated.
    """

    def __init__(
        self,
        capacity: int = HISTORY_CAPACITY,
        sink_path: str | os.PathLike | None = None,
    ) -> None:
        if capacity <= 0:
            raise ValueError("history capacity must be positive")
        self.log = logging.getLogger("linechatd.history")
        self.capacity = int(capacity)
        self.sink_path = Path(sink_path) if sink_path else None
        self._lock = threading.Lock()
        self._ring: deque[ChatMessage] = deque(maxlen=self.capacity)
        self._sink: TextIO | None = None
        self._sink_failed = False

    def append(self, username: str, content: str, kind: str) -> ChatMessage:
        record = ChatMessage(
            timestamp=time.time(), username=username, content=content, kind=kind
        )
        with self._lock:
            self._ring.append(record)
            self._write_sink(record)
        return record

    def recent(self, n: int) -> list[ChatMessage]:
        """Last `n` records, oldest first."""
        if n <= 0:
            return []
        with self._lock:
            items = list(self._ring)
        return items[-n:]

    def __len__(self) -> int:
        with self._lock:
            return len(self._ring)

    def close(self) -> None:
        with self._lock:
            if self._sink is not None:
                try:
                    self._sink.close()
                except OSError:
                    self.log.warning("Failed to close history sink", exc_info=True)
                self._sink = None

    def _write_sink(self, record: ChatMessage) -> None:
        # Must be called with the lock held.
        if self.sink_path is None:
            return
        try:
            if self._sink is None:
                if self.sink_path.parent:
                    self.sink_path.parent.mkdir(parents=True, exist_ok=True)
                self._sink = open(self.sink_path, "a", encoding="utf-8")
            self._sink.write(record.render() + "\n")
            self._sink.flush()
            self._sink_failed = False
        except OSError as e:
            # Warn once per failure streak so a dead disk doesn't flood the console.
            if not self._sink_failed:
                self.log.warning("History sink write failed path=%s err=%s", self.sink_path, e)
            self._sink_failed = True
            if self._sink is not None:
                try:
                    self._sink.close()
                except OSError:
                    pass
                self._sink = None
