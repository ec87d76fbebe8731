"""Logging setup — file log in the config directory, stderr when verbose."""

from __future__ import annotations

import logging
from pathlib import Path

LOG_FILE = "phasetimer.log"
_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_dir: Path, verbose: bool = False) -> logging.Logger:
    """Configure and return the package logger.

    Always logs to ``<log_dir>/phasetimer.log``; *verbose* adds a stderr
    handler at DEBUG.  Calling this twice does not duplicate handlers.
    """
    logger = logging.getLogger("phasetimer")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    if not logger.handlers:
        formatter = logging.Formatter(_FORMAT)
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_dir / LOG_FILE)
        except OSError:
            file_handler = None
        if file_handler is not None:
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

        if verbose:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.DEBUG)
            console_handler.setFormatter(formatter)
            logger.addHandler(console_handler)

    return logger
