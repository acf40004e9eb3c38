import logging
import os
import stat

import pytest

from linechatd.config import ChatServerConfig
from linechatd.logging_config import configure_logging, resolve_level


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    yield root
    for h in list(root.handlers):
        root.removeHandler(h)
        if h not in saved_handlers:
            h.close()
    for h in saved_handlers:
        root.addHandler(h)
    root.setLevel(saved_level)
    logging.captureWarnings(False)


def test_resolve_level_accepts_names_aliases_and_numbers() -> None:
    assert resolve_level("debug") == logging.DEBUG
    assert resolve_level(" WARN ") == logging.WARNING
    assert resolve_level("15") == 15
    assert resolve_level(logging.ERROR) == logging.ERROR
    assert resolve_level(None) == logging.INFO
    assert resolve_level("") == logging.INFO


def test_resolve_level_rejects_unknown_names() -> None:
    with pytest.raises(ValueError):
        resolve_level("chatty")


def test_configure_logging_writes_private_file(tmp_path, restore_root_logger) -> None:
    log_path = tmp_path / "logs" / "linechatd.log"
    cfg = ChatServerConfig(
        log_level="DEBUG",
        log_console=False,
        log_file=str(log_path),
        log_format="%(levelname)s %(name)s: %(message)s",
    )

    handlers = configure_logging(cfg)
    assert len(handlers) == 1
    assert restore_root_logger.handlers == handlers
    assert restore_root_logger.level == logging.DEBUG

    logging.getLogger("linechatd.server").debug("Listening on %s", "test")
    handlers[0].flush()

    assert log_path.read_text(encoding="utf-8") == "DEBUG linechatd.server: Listening on test\n"
    assert stat.S_IMODE(os.stat(log_path).st_mode) == 0o600


def test_configure_logging_replaces_previous_handlers(restore_root_logger) -> None:
    first = configure_logging(ChatServerConfig(log_console=True))
    second = configure_logging(ChatServerConfig(log_console=True, log_level="WARNING"))

    assert restore_root_logger.handlers == second
    assert first[0] not in restore_root_logger.handlers
    assert restore_root_logger.level == logging.WARNING
