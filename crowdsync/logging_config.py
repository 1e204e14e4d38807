"""Logger setup for the ``crowdsync`` commands."""
import logging
import os
import sys
from logging import Handler
from typing import Optional

from tqdm import tqdm

LOGGER_NAME = "crowdsync"

FILE_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
CONSOLE_FORMAT = '%(message)s'


class TqdmLoggingHandler(Handler):
    """Console handler that prints above an active build bar instead of through it."""

    def emit(self, record):
        try:
            tqdm.write(self.format(record), file=sys.stderr)
            self.flush()
        except (KeyboardInterrupt, SystemExit):
            raise
        except Exception:
            self.handleError(record)


def _file_handler(log_file_path: str) -> logging.FileHandler:
    log_dir = os.path.dirname(log_file_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    handler = logging.FileHandler(log_file_path, encoding='utf-8')
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    return handler


def setup_logger(log_level_str: str, log_file_path: Optional[str], log_to_console: bool) -> logging.Logger:
    """
    Configure the ``crowdsync`` logger for one command run.

    Module loggers (``crowdsync.client``, ``crowdsync.download``, ...) have no
    handlers of their own and reach these through propagation. Calling this
    again replaces the previous handlers.

    Args:
        log_level_str: Level name from the ``logging`` config section; unknown names fall back to INFO.
        log_file_path: Also write records (with timestamps and module names) to this file.
        log_to_console: Print bare messages to stderr.

    Returns:
        The ``crowdsync`` logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level_str.upper(), logging.INFO))
    logger.handlers.clear()
    logger.propagate = False

    if log_file_path:
        logger.addHandler(_file_handler(log_file_path))
    if log_to_console:
        console = TqdmLoggingHandler()
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        logger.addHandler(console)
    return logger
