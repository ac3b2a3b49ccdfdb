"""Logging for the forge runtime.

Everything logs under the ``forge_agent`` logger to stderr, which keeps
stdout free for agent replies in the REPL.
"""

import logging
import os
import sys

LOG_LEVEL_ENV = "FORGE_LOG_LEVEL"
ROOT_LOGGER = "forge_agent"

# HTTP chatter from the provider SDKs, shown only when debugging
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic")


class ShortNameFormatter(logging.Formatter):
    """Drop the ``forge_agent.`` prefix from logger names."""

    def format(self, record: logging.LogRecord) -> str:
        record.short_name = record.name.removeprefix(f"{ROOT_LOGGER}.")
        return super().format(record)


def resolve_level(level: str | None = None) -> int:
    """Pick the level from the CLI flag, then FORGE_LOG_LEVEL, then WARNING.

    An unrecognized name is reported on stderr and replaced by WARNING.
    """
    name = (level or os.environ.get(LOG_LEVEL_ENV) or "WARNING").upper()
    numeric = logging.getLevelName(name)
    if not isinstance(numeric, int):
        print(f"Warning: Invalid log level '{name}', using WARNING", file=sys.stderr)
        return logging.WARNING
    return numeric


def setup_logging(level: str | None = None) -> logging.Logger:
    """Configure the package logger; safe to call more than once.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)

    Returns:
        The ``forge_agent`` logger
    """
    numeric_level = resolve_level(level)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(numeric_level)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(ShortNameFormatter(
            "%(asctime)s %(levelname)-7s %(short_name)s: %(message)s",
            datefmt="%H:%M:%S",
        ))
        logger.addHandler(handler)
    for handler in logger.handlers:
        handler.setLevel(numeric_level)

    library_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
