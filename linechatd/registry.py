"""Case-insensitive registry of claimed usernames."""

from __future__ import annotations

import enum
import threading

from .util import fold_username


class RenameResult(enum.Enum):
    OK = "ok"
    NAME_TAKEN = "name_taken"


class UsernameRegistry:
    """
    The single source of truth for "is this name taken".

    Every operation runs under one exclusive lock, so callers never need to
    check-then-act themselves. Names keep the case they were claimed with for
    display; comparison is case-insensitive.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._names: dict[str, str] = {}  # folded name -> display name

    def claim(self, name: str) -> bool:
        """Claim `name` if nobody holds it. Returns False without changes otherwise."""
        key = fold_username(name)
        with self._lock:
            if key in self._names:
                return False
            self._names[key] = name
            return True

    def release(self, name: str) -> None:
        with self._lock:
            self._names.pop(fold_username(name), None)

    def rename(self, old: str, new: str) -> RenameResult:
        """
        Atomically swap `old` for `new`.

        Renaming to a different-case spelling of the caller's own name is
        allowed; any other holder of `new` makes the rename fail with no change.
        """
        old_key = fold_username(old) if old else None
        new_key = fold_username(new)
        with self._lock:
            if new_key in self._names and new_key != old_key:
                return RenameResult.NAME_TAKEN
            if old_key is not None:
                self._names.pop(old_key, None)
            self._names[new_key] = new
            return RenameResult.OK

    def is_claimed(self, name: str) -> bool:
        with self._lock:
            return fold_username(name) in self._names

    def names(self) -> list[str]:
        """Claimed names in display case, sorted ordinally."""
        with self._lock:
            return sorted(self._names.values())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.is_claimed(name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._names)
