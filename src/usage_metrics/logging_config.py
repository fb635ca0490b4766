"""
Logging setup for the usage-metrics commands.

Level priority: --log-level argument > LOG_LEVEL environment variable > INFO.
ERROR and above get function name and line number appended to the format.

Library modules only do ``logger = logging.getLogger(__name__)``; the root
logger is configured once by the CLI through ``configure_logging``.
"""

import argparse
import logging
import os
from typing import Optional

VALID_LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR']
DEFAULT_LOG_LEVEL = 'INFO'
LOG_LEVEL_ENV_VAR = 'LOG_LEVEL'

STANDARD_LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
DETAILED_LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(funcName)s:%(lineno)d - %(message)s'


def get_log_level(cli_level: Optional[str] = None) -> int:
    """
    Resolve the log level from the CLI value, then LOG_LEVEL, then the default.

    Raises:
        ValueError: If the resolved level is not one of VALID_LOG_LEVELS.
    """
    level_str = (cli_level or os.getenv(LOG_LEVEL_ENV_VAR) or DEFAULT_LOG_LEVEL).upper()
    if level_str not in VALID_LOG_LEVELS:
        raise ValueError(
            f"Invalid log level: '{level_str}'. "
            f"Valid levels are: {', '.join(VALID_LOG_LEVELS)}"
        )
    return getattr(logging, level_str)


class DetailedErrorFormatter(logging.Formatter):
    """Uses DETAILED_LOG_FORMAT for ERROR and above, STANDARD_LOG_FORMAT otherwise."""

    def __init__(self, standard_fmt: str = STANDARD_LOG_FORMAT,
                 detailed_fmt: str = DETAILED_LOG_FORMAT, datefmt: Optional[str] = None):
        super().__init__(fmt=standard_fmt, datefmt=datefmt)
        self.standard_fmt = standard_fmt
        self.detailed_fmt = detailed_fmt

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.ERROR:
            self._style._fmt = self.detailed_fmt
        else:
            self._style._fmt = self.standard_fmt
        return super().format(record)


def configure_logging(log_file: Optional[str] = None,
                      log_level: Optional[str] = None) -> logging.Logger:
    """
    Configure the root logger with a console handler and, if given, a file handler.

    Existing root handlers are removed so repeated calls do not duplicate output.
    """
    level = get_log_level(log_level)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)

    formatter = DetailedErrorFormatter()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    source = "command-line" if log_level else (
        "environment variable" if os.getenv(LOG_LEVEL_ENV_VAR) else "default"
    )
    logging.debug(f"Logging configured: level={logging.getLevelName(level)} (from {source})")
    return root_logger


def add_log_level_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--log-level',
        type=str.upper,
        choices=VALID_LOG_LEVELS,
        default=None,
        help=f"Logging level (default: ${LOG_LEVEL_ENV_VAR} or {DEFAULT_LOG_LEVEL})",
    )
