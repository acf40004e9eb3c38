"""Root logger setup for the linechatd entry point."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from .config import ChatServerConfig
from .util import expand_path


def resolve_level(value: str | int | None) -> int:
    """Map a level name ("debug", "WARN") or number to a logging level.

    Raises ValueError for names the logging module does not know.
    """
    if value is None or isinstance(value, int):
        return logging.INFO if value is None else value

    text = value.strip().upper()
    if not text:
        return logging.INFO
    if text.isdigit():
        return int(text)

    level = logging.getLevelNamesMapping().get(text)
    if level is None:
        raise ValueError(f"unknown log level {value!r}")
    return level


def _private_file_handler(path: str) -> logging.FileHandler:
    p = Path(expand_path(path))
    p.parent.mkdir(parents=True, exist_ok=True)
    # Create owner-only before the handler opens it for append.
    os.close(os.open(p, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600))
    return logging.FileHandler(p, encoding="utf-8")


def configure_logging(cfg: ChatServerConfig) -> list[logging.Handler]:
    """Replace the root handlers according to `cfg` and return the new ones."""
    level = resolve_level(cfg.log_level)

    handlers: list[logging.Handler] = []
    if cfg.log_console:
        handlers.append(logging.StreamHandler(sys.stderr))
    if cfg.log_file:
        handlers.append(_private_file_handler(cfg.log_file))

    formatter = logging.Formatter(
        fmt=cfg.log_format or ChatServerConfig.log_format,
        datefmt=cfg.log_datefmt or None,
    )

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in handlers:
        h.setFormatter(formatter)
        root.addHandler(h)
    root.setLevel(level)

    logging.captureWarnings(True)
    return handlers
