"""
Logging configuration for CLI runs.

Library modules only create loggers; handlers are installed here, once,
when the CLI starts.
"""

from __future__ import annotations

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
    level: str = "INFO",
    *,
    verbose: bool = False,
    log_file: Path | None = None,
) -> logging.Logger:
    """
    Attach handlers to the ``pixelcache`` logger.

    Parameters
    ----------
    level : str, optional
        Level name used when ``verbose`` is off (default "INFO").
    verbose : bool, optional
        If True, log at DEBUG and echo records to stderr (default False).
    log_file : Path | None, optional
        If given, also write records to this file, creating its directory.

    Returns
    -------
    logging.Logger
        The configured ``pixelcache`` logger.
    """
    log_level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger("pixelcache")
    root_logger.setLevel(log_level)

    # Re-running the CLI in one process must not stack handlers
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if verbose:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if not root_logger.handlers:
        root_logger.addHandler(logging.NullHandler())

    # SQL echo and connection chatter stay quiet unless asked for
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)

    return root_logger
