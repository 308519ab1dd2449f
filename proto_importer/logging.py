"""Logging setup shared by the proto-importer CLI and pipeline stages."""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "proto_importer"
_CONSOLE_FORMAT = "[proto-importer] %(levelname)s %(message)s"
# Units run on worker threads, so the file sink records which one spoke.
_FILE_FORMAT = "%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a stage logger such as ``proto_importer.resolver``."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Install console output and, when ``log_file`` is given, a DEBUG file sink.

    The file sink always records DEBUG so per-artifact detail is kept even when
    the console only shows stage progress.
    """
    console_level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(console)

    logger_level = console_level
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        sink = logging.FileHandler(log_file, encoding="utf-8")
        sink.setLevel(logging.DEBUG)
        sink.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(sink)
        logger_level = logging.DEBUG

    logger.setLevel(logger_level)
    return logger


__all__ = ["configure_logging", "get_logger"]
