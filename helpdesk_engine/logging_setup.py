"""Console and file log sinks for the engine and its command-line tools."""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

from rich.logging import RichHandler

from .config import logging_settings, resolve_path

# HTTP transport chatter from the oracle client stays out of DEBUG log files.
QUIET_LOGGERS = ("urllib3", "requests")

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _console_handler(settings: Dict[str, Any]) -> logging.Handler:
    if settings["rich_format"]:
        handler: logging.Handler = RichHandler(rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    handler.setLevel(settings["level"])
    return handler


def _file_handler(settings: Dict[str, Any], base_dir: Path | None) -> logging.Handler:
    log_path = resolve_path(settings["path"], base=base_dir)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    handler.setLevel(settings["level"])
    return handler


def configure_logging(config: Dict[str, Any], *, base_dir: Path | None = None) -> List[logging.Handler]:
    """Replace the root handlers with the sinks enabled in ``config``.

    Returns the installed handlers so callers can inspect or close them.
    """
    sinks = logging_settings(config)
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.DEBUG)
    logging.captureWarnings(True)

    handlers: List[logging.Handler] = []
    if sinks["console"]["enabled"]:
        handlers.append(_console_handler(sinks["console"]))
    if sinks["file"]["enabled"]:
        handlers.append(_file_handler(sinks["file"], base_dir))
    for handler in handlers:
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handlers
