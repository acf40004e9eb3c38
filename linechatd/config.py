from __future__ import annotations

import os
from dataclasses import asdict, dataclass, replace
from pathlib import Path

from .constants import DEFAULT_PORT, HISTORY_CAPACITY


@dataclass(frozen=True)
class ChatServerConfig:
    config_path: str | None = None
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    server_name: str = "linechatd"
    greeting: str = (
        "Welcome to the chat server. Please set your username with !username <name>."
    )
    about_text: str | None = None
    history_capacity: int = HISTORY_CAPACITY
    history_dir: str | None = None
    history_file: str | None = None
    max_line_bytes: int = 4096
    admin_console: bool = True
    log_level: str = "INFO"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
    log_datefmt: str | None = None


_OPTIONAL_TEXT_KEYS = (
    "about_text",
    "history_dir",
    "history_file",
    "log_file",
    "log_datefmt",
)

_LOGGING_KEYS = {
    "level": "log_level",
    "console": "log_console",
    "file": "log_file",
    "format": "log_format",
    "datefmt": "log_datefmt",
}


def load_toml(path: str) -> dict:
    import tomllib

    with open(path, "rb") as f:
        data = tomllib.load(f)
    return data if isinstance(data, dict) else {}


def apply_config_data(base: ChatServerConfig, data: dict) -> ChatServerConfig:
    """Overlay parsed TOML onto `base`. Unknown keys are ignored."""
    server = data.get("server") if isinstance(data, dict) else None
    if isinstance(server, dict):
        data = {**data, **server}

    log_table = data.get("logging") if isinstance(data, dict) else None
    if isinstance(log_table, dict):
        mapped = {
            field_name: log_table.get(key)
            for key, field_name in _LOGGING_KEYS.items()
            if key in log_table
        }
        data = {**data, **mapped}

    allowed = set(asdict(base).keys())
    # This identifies where the file was loaded from; do not let the file override it.
    allowed.discard("config_path")
    updates = {k: v for k, v in data.items() if k in allowed}

    for key in _OPTIONAL_TEXT_KEYS:
        if key in updates and updates[key] == "":
            updates[key] = None

    for key in ("port", "history_capacity", "max_line_bytes"):
        if key in updates:
            try:
                updates[key] = int(updates[key])
            except (TypeError, ValueError) as e:
                raise ValueError(f"config key {key!r} must be an integer") from e

    return replace(base, **updates) if updates else base


def load_config_file(base: ChatServerConfig, path: str) -> ChatServerConfig:
    return replace(apply_config_data(base, load_toml(path)), config_path=path)


def default_state_dir() -> Path:
    """`$LINECHATD_HOME`, or `~/.linechatd`."""
    override = os.environ.get("LINECHATD_HOME")
    return Path(override) if override else Path.home() / ".linechatd"


def default_config_path() -> Path:
    return default_state_dir() / "linechatd.toml"


def default_history_dir() -> Path:
    return default_state_dir() / "history"


def ensure_private_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
    try:
        os.chmod(path, 0o700)
    except OSError:
        # Some filesystems ignore permission bits.
        pass
