from __future__ import annotations

import os
import string

from .constants import USERNAME_MAX_CHARS, USERNAME_MIN_CHARS

_NAME_CHARS = frozenset(string.ascii_letters + string.digits + "_-")
_NAME_LEADING = frozenset(string.ascii_letters + string.digits)


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def fold_username(name: str) -> str:
    """Key used for case-insensitive username comparison."""
    return name.strip().casefold()


def normalize_username(value) -> str:
    """Validate a candidate username and return it trimmed.

    Raises ValueError with a human-readable reason when the name is invalid.
    Pure: never consults the registry.
    """
    if not isinstance(value, str):
        raise ValueError("username must be text")

    s = value.strip()
    if not s:
        raise ValueError("username must not be empty")

    if any(ch.isspace() for ch in s):
        raise ValueError("username must not contain spaces")

    if not (USERNAME_MIN_CHARS <= len(s) <= USERNAME_MAX_CHARS):
        raise ValueError(
            f"username must be {USERNAME_MIN_CHARS}-{USERNAME_MAX_CHARS} characters"
        )

    if any(ch not in _NAME_CHARS for ch in s):
        raise ValueError(
            "username may only contain letters, digits, underscores and hyphens"
        )

    if s[0] not in _NAME_LEADING:
        raise ValueError("username must start with a letter or digit")

    return s


def format_uptime(seconds: float) -> str:
    """Render a duration as dd.hh:mm:ss."""
    total = max(0, int(seconds))
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    return f"{days:02d}.{hours:02d}:{minutes:02d}:{secs:02d}"
