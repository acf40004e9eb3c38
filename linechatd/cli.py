from __future__ import annotations

import argparse
import logging
import os
import sys
import threading
from dataclasses import replace
from pathlib import Path

import tomlkit

from .admin import AdminConsole
from .config import (
    ChatServerConfig,
    default_config_path,
    default_history_dir,
    ensure_private_dir,
    load_config_file,
)
from .logging_config import configure_logging
from .service import ChatService


def build_default_config(history_dir: str) -> tomlkit.TOMLDocument:
    defaults = ChatServerConfig()

    doc = tomlkit.document()
    doc.add(tomlkit.comment("linechatd configuration (TOML)"))
    doc.add(tomlkit.comment("This file was created on first run. Edit it and restart linechatd."))
    doc.add(tomlkit.nl())

    server = tomlkit.table()
    server.add(tomlkit.comment("Address and TCP port to listen on."))
    server.add("host", defaults.host)
    server.add("port", defaults.port)
    server.add(tomlkit.nl())
    server.add(tomlkit.comment("First line sent to every new connection."))
    server.add("greeting", defaults.greeting)
    server.add(tomlkit.comment("Reply to !about. Leave empty for the built-in text."))
    server.add("about_text", "")
    server.add(tomlkit.nl())
    server.add(tomlkit.comment("In-memory history size, and where each run's chat log is written."))
    server.add(tomlkit.comment("history_file overrides history_dir. Empty history_dir disables the log."))
    server.add("history_capacity", defaults.history_capacity)
    server.add("history_dir", history_dir)
    server.add("history_file", "")
    server.add(tomlkit.nl())
    server.add(tomlkit.comment("Longest accepted line in bytes; longer lines drop the connection."))
    server.add("max_line_bytes", defaults.max_line_bytes)
    server.add(tomlkit.comment("Read operator commands (mods, mod, kick, shutdown) from stdin."))
    server.add("admin_console", defaults.admin_console)
    doc.add("server", server)

    log_table = tomlkit.table()
    log_table.add("level", defaults.log_level)
    log_table.add("console", defaults.log_console)
    log_table.add(tomlkit.comment("Optional file path for logs (leave empty to disable)."))
    log_table.add("file", "")
    log_table.add("format", defaults.log_format)
    log_table.add("datefmt", "")
    doc.add("logging", log_table)

    return doc


def _ensure_first_run_config(config_path: str) -> bool:
    if os.path.exists(config_path):
        return False

    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        ensure_private_dir(Path(cfg_dir))

    content = tomlkit.dumps(build_default_config(str(default_history_dir())))
    with open(config_path, "w", encoding="utf-8") as f:
        f.write(content)
    try:
        os.chmod(config_path, 0o600)
    except OSError:
        pass
    return True


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="linechatd", description="Run a line-oriented chat server")

    p.add_argument("port", nargs="?", type=int, default=None, help="TCP port (default: 5001)")
    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument("--host", default=None, help="Address to listen on")
    p.add_argument("--history-dir", default=None, help="Directory for per-run chat logs")
    p.add_argument("--history-file", default=None, help="Explicit chat log file path")
    p.add_argument(
        "--no-history-file",
        action="store_true",
        help="Keep history in memory only",
    )
    p.add_argument(
        "--no-admin-console",
        action="store_true",
        help="Do not read operator commands from stdin",
    )
    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )
    return p


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    config_path = str(args.config)
    created = _ensure_first_run_config(config_path)

    cfg = load_config_file(ChatServerConfig(), config_path)

    if args.port is not None:
        cfg = replace(cfg, port=int(args.port))
    if args.host is not None:
        cfg = replace(cfg, host=str(args.host))
    if args.history_dir is not None:
        cfg = replace(cfg, history_dir=str(args.history_dir) or None)
    if args.history_file is not None:
        cfg = replace(cfg, history_file=str(args.history_file) or None)
    if args.no_history_file:
        cfg = replace(cfg, history_dir=None, history_file=None)
    if args.no_admin_console:
        cfg = replace(cfg, admin_console=False)
    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) if str(args.log_file) else None)

    try:
        configure_logging(cfg)
    except ValueError as e:
        print(f"linechatd: {e}", file=sys.stderr)
        raise SystemExit(2) from e
    log = logging.getLogger("linechatd")
    if created:
        log.info("Created default config at %s", config_path)

    svc = ChatService(cfg)
    try:
        svc.start()
    except OSError as e:
        log.error("Cannot listen on %s:%s: %s", cfg.host, cfg.port, e)
        raise SystemExit(1) from e

    if cfg.admin_console:
        threading.Thread(
            target=AdminConsole(svc).run,
            args=(sys.stdin,),
            name="linechatd-admin",
            daemon=True,
        ).start()

    svc.run_forever()


if __name__ == "__main__":
    main()
