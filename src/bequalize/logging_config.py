"""Logging setup shared by the CLI and long-running monitor sessions."""

import logging
import logging.config
import os
import sys

from pathlib import Path
from typing import Any

from bequalize.constants import (
    DEFAULT_LOG_BACKUP_COUNT,
    DEFAULT_LOG_DIR,
    DEFAULT_LOG_FILE,
    DEFAULT_LOG_MAX_BYTES,
)

_logging_configured = False

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_log_dir() -> Path:
    """Return the log directory, created owner-only on first use."""
    os.makedirs(DEFAULT_LOG_DIR, mode=0o700, exist_ok=True)
    return DEFAULT_LOG_DIR


def get_log_path() -> Path:
    """Path to the active log file (bequalize.log)."""
    return get_log_dir() / DEFAULT_LOG_FILE


def _file_settings() -> dict[str, Any]:
    """
    Read the [logging] table of config.toml.

    A missing or malformed table yields an empty dict so defaults apply.
    """
    from bequalize.config import load_config

    section = load_config().get("logging", {})
    return section if isinstance(section, dict) else {}


def _console_handler(verbose: bool) -> dict[str, Any]:
    # Monitor output goes to stdout; diagnostics stay on stderr
    return {
        "class": "logging.StreamHandler",
        "level": "DEBUG" if verbose else "WARNING",
        "formatter": "console",
        "stream": "ext://sys.stderr",
    }


def _file_handler(settings: dict[str, Any]) -> dict[str, Any]:
    max_bytes = DEFAULT_LOG_MAX_BYTES
    if "max_size_mb" in settings:
        max_bytes = int(settings["max_size_mb"] * 1024 * 1024)

    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": str(settings.get("level", "DEBUG")).upper(),
        "formatter": "file",
        "filename": str(get_log_path()),
        "maxBytes": max_bytes,
        "backupCount": settings.get("backup_count", DEFAULT_LOG_BACKUP_COUNT),
        "encoding": "utf-8",
    }


def _build_logging_config(
    verbose: bool = False,
    console_format: str | None = None,
) -> dict[str, Any]:
    """
    Assemble the dictConfig schema for console and rotating file output.

    Args:
        verbose: Lower the console threshold from WARNING to DEBUG
        console_format: Console format string; file output always uses LOG_FORMAT

    Returns:
        Schema accepted by logging.config.dictConfig()
    """
    settings = _file_settings()

    handlers = {"console": _console_handler(verbose)}
    if settings.get("enabled", True):
        handlers["file"] = _file_handler(settings)

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"format": console_format or LOG_FORMAT},
            "file": {"format": LOG_FORMAT},
        },
        "handlers": handlers,
        "root": {"level": "DEBUG", "handlers": list(handlers)},
    }


def setup_logging(
    *,
    verbose: bool = False,
    console_format: str | None = None,
) -> None:
    """
    Install the Bequalize logging handlers once per process.

    The console only shows warnings unless verbose, so per-window processor
    messages land in the rotating log file instead of the monitor output.
    If the file handler cannot be created the console falls back to
    logging.basicConfig.

    Args:
        verbose: Show DEBUG records on the console
        console_format: Console format string, LOG_FORMAT when omitted
    """
    global _logging_configured

    if _logging_configured:
        return

    try:
        logging.config.dictConfig(
            _build_logging_config(verbose=verbose, console_format=console_format)
        )
    except (OSError, ValueError, TypeError) as e:
        sys.stderr.write(f"WARNING: logging setup failed, using stderr only: {e}\n")
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.WARNING,
            format=console_format or "%(levelname)s: %(message)s",
        )

    _logging_configured = True
