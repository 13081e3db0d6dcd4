"""Logging setup for aosp_builder.

Every status line goes to two sinks: the console (via rich) and an
append-only log file next to the build directory. Child process output
is mirrored to the same sinks by ``tee_line``.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TextIO

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "aosp_builder"
FILE_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    log_path: Path,
    level: str = "INFO",
    console: Console | None = None,
) -> logging.Logger:
    """Attach console and file handlers to the package logger.

    Calling this again replaces the handlers installed by a previous call.

    Args:
        log_path: Append-only log file.
        level: Logging level name.
        console: Optional rich console for the console handler.

    Returns:
        The configured package logger.
    """
    root = logging.getLogger(LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    root.setLevel(level)
    root.propagate = False

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(level)
    root.addHandler(console_handler)

    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    file_handler.setLevel(level)
    root.addHandler(file_handler)

    return root


def success(log: logging.Logger, message: str, *args: object) -> None:
    """Log a success status line."""
    log.info("[SUCCESS] " + message, *args)


def tee_line(line: str, log_file: TextIO, stream: TextIO | None = None) -> None:
    """Write one line of child output to the log file and the console.

    Args:
        line: Line including its trailing newline, if any.
        log_file: Open log file.
        stream: Console stream (defaults to sys.stdout).
    """
    out = stream if stream is not None else sys.stdout
    out.write(line)
    out.flush()
    log_file.write(line)
    log_file.flush()


__all__ = ["LOGGER_NAME", "setup_logging", "success", "tee_line"]
