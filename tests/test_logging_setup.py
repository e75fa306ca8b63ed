from __future__ import annotations

import logging
from pathlib import Path

import pytest
from rich.logging import RichHandler

from helpdesk_engine.config import ConfigError, logging_settings
from helpdesk_engine.logging_setup import configure_logging


@pytest.fixture(autouse=True)
def restore_root_level():
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if isinstance(handler, (logging.FileHandler, RichHandler)):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


def test_logging_settings_defaults_and_levels() -> None:
    sinks = logging_settings({"logging": {"console": {"level": "debug"}}})

    assert sinks["console"]["level"] == "DEBUG"
    assert sinks["console"]["rich_format"] is False
    assert sinks["file"]["path"] == "logs/helpdesk_engine.log"


@pytest.mark.parametrize(
    "section",
    [
        {"console": {"level": "LOUD"}},
        {"syslog": {"enabled": True}},
        {"file": {"rotate": True}},
        ["console"],
    ],
)
def test_invalid_logging_section_raises(section) -> None:
    with pytest.raises(ConfigError):
        logging_settings({"logging": section})


def test_file_sink_writes_under_base_dir(tmp_path: Path) -> None:
    config = {
        "logging": {
            "console": {"enabled": False},
            "file": {"path": "logs/run.log", "level": "info"},
        }
    }

    handlers = configure_logging(config, base_dir=tmp_path)
    logging.getLogger("helpdesk_engine.training").info("Published training cycle 1")
    logging.getLogger("helpdesk_engine.training").debug("not written at INFO")
    for handler in handlers:
        handler.flush()

    text = (tmp_path / "logs" / "run.log").read_text(encoding="utf-8")
    assert "| INFO | helpdesk_engine.training | Published training cycle 1" in text
    assert "not written" not in text
    assert logging.getLogger("urllib3").level == logging.WARNING


def test_console_sink_uses_rich_when_requested(tmp_path: Path) -> None:
    config = {"logging": {"console": {"rich_format": True}, "file": {"enabled": False}}}

    handlers = configure_logging(config, base_dir=tmp_path)

    assert len(handlers) == 1
    assert isinstance(handlers[0], RichHandler)
    assert logging.getLogger().handlers == handlers
