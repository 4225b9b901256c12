"""Logging helpers."""

from __future__ import annotations

import logging
import os
import threading
from logging.handlers import RotatingFileHandler


def setup_logging(log_dir: str, level: int = logging.INFO) -> tuple[logging.Logger, str]:
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, "ticketscribe.log")

    logger = logging.getLogger("ticketscribe")
    logger.setLevel(level)
    # The terminal belongs to the prompt and the flushed unit output.
    logger.propagate = False

    if not logger.handlers:
        handler = RotatingFileHandler(
            log_path, maxBytes=2_000_000, backupCount=3, encoding="utf-8"
        )
        fmt = logging.Formatter(
            "%(asctime)s %(levelname)s %(threadName)s %(name)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(fmt)
        logger.addHandler(handler)

    def _thread_excepthook(args) -> None:
        logger.exception(
            "Thread exception",
            exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
        )

    threading.excepthook = _thread_excepthook
    return logger, log_path
