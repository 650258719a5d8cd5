"""Logging setup for Typist.

Levels (ascending):
    TRACE =  5  — every foreground event, every binding lookup
    DEBUG = 10  — skipped switches, gateway fallbacks, store writes
    INFO  = 20  — switches performed, binding changes, startup/shutdown (default)

Usage:
    import typist.log  # must be imported once before any logger is used
    logger = logging.getLogger(__name__)
    logger.trace("very noisy message")

The daemon calls :func:`setup_logging` once; library code only ever asks
for ``logging.getLogger(__name__)``.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from pathlib import Path

TRACE: int = 5
logging.addLevelName(TRACE, "TRACE")

DEFAULT_LOG_FILE = '~/.typist.log'
LOG_FORMAT = '[%(asctime)s] %(levelname)-8s %(name)s: %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'


def _trace(self: logging.Logger, message: object, *args: object, **kwargs: object) -> None:
    if self.isEnabledFor(TRACE):
        self._log(TRACE, message, args, **kwargs)  # type: ignore[attr-defined]


# Patch Logger class once at import time
logging.Logger.trace = _trace  # type: ignore[attr-defined]


def setup_logging(
    debug: bool = False,
    trace: bool = False,
    log_file: str | None = None,
) -> logging.Logger:
    """Configure the ``typist`` logger with a rotating file and stderr output.

    Args:
        debug: Show DEBUG messages on stderr (file always gets DEBUG).
        trace: Enable TRACE level everywhere (implies debug).
        log_file: Path to log file (default: ~/.typist.log). Pass ``''``
            to disable file logging.

    Calling it again replaces previously installed handlers.
    """
    logger = logging.getLogger('typist')
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if trace:
        level = TRACE
    elif debug:
        level = logging.DEBUG
    else:
        level = logging.INFO
    # File handler always records DEBUG, so the logger itself must pass it
    logger.setLevel(TRACE if trace else logging.DEBUG)

    fmt = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    if log_file is None:
        log_file = os.path.expanduser(DEFAULT_LOG_FILE)

    if log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,  # 10 MB
                backupCount=5,
                encoding='utf-8',
            )
            file_handler.setLevel(TRACE if trace else logging.DEBUG)
            file_handler.setFormatter(fmt)
            logger.addHandler(file_handler)
        except OSError as exc:
            print(f"Warning: Could not setup file logging: {exc}", file=sys.stderr)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level if (debug or trace) else logging.WARNING)
    console_handler.setFormatter(fmt)
    logger.addHandler(console_handler)

    return logger
