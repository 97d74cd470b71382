#!/usr/bin/env python3
"""
Logging configuration for rbnvfd.

The root logger is configured once from the entry point; every module logs
through `get_logger(__name__)`. Feed and rig messages carry a marker emoji
(📡 feed, 🔌 socket, 📻 rig, 🧹 purge) that is kept on a terminal and
stripped when running under systemd, where the journal adds its own prefix.
"""
import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s"
LOG_FORMAT_SIMPLE = "%(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MARKERS = "📡🔌📻🧹"
LEVEL_MARKERS = {
    logging.WARNING: "⚠️ ",
    logging.ERROR: "❌ ",
    logging.CRITICAL: "💥 ",
}

# Libraries that are chatty at INFO; raised to WARNING unless verbose
NOISY_LOGGERS = ("asyncio", "uvicorn.access", "httpx")


class EmojiFormatter(logging.Formatter):
    """Adds a level marker to warnings and errors, or strips markers entirely."""

    def __init__(self, fmt=None, datefmt=None, strip_markers: bool = False):
        super().__init__(fmt, datefmt=datefmt)
        self.strip_markers = strip_markers

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        message = record.getMessage()
        if self.strip_markers:
            bare = message.lstrip(MARKERS + "⚠️❌💥 ")
            return text.replace(message, bare, 1) if bare != message else text

        marker = LEVEL_MARKERS.get(record.levelno, "")
        if marker and not message.startswith(tuple(MARKERS + "⚠❌💥")):
            return text.replace(message, marker + message, 1)
        return text


def has_console() -> bool:
    """True when stdout is a terminal."""
    return sys.stdout.isatty()


def setup_logging(
    verbose: bool = False,
    console_output: bool = True,
    log_file: str | None = None,
    simple_format: bool | None = None,
) -> None:
    """
    Configure the root logger.

    Args:
        verbose: DEBUG instead of INFO, and leave library loggers alone
        console_output: log to stdout
        log_file: also append to this file (full format, no markers)
        simple_format: message-only console lines; defaults to True when
            stdout is not a terminal
    """
    level = logging.DEBUG if verbose else logging.INFO
    console = has_console()
    if simple_format is None:
        simple_format = not console

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if console_output:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(EmojiFormatter(
            LOG_FORMAT_SIMPLE if simple_format else LOG_FORMAT,
            datefmt=DATE_FORMAT,
            strip_markers=not console,
        ))
        root_logger.addHandler(handler)

    if log_file:
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(level)
        handler.setFormatter(EmojiFormatter(LOG_FORMAT, datefmt=DATE_FORMAT, strip_markers=True))
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET if verbose else logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Logger for a module.

        logger = get_logger(__name__)
        logger.info("📡 RBN: %s", text)
    """
    return logging.getLogger(name)
