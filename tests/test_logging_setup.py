"""Tests for the log formatter and setup."""

import logging

import pytest

from rbnvfd import logging_setup
from rbnvfd.logging_setup import LOG_FORMAT_SIMPLE, EmojiFormatter, setup_logging


def record(level, msg, *args):
    return logging.LogRecord("rbnvfd.test", level, __file__, 1, msg, args, None)


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestEmojiFormatter:
    def test_warning_gets_level_marker(self):
        fmt = EmojiFormatter(LOG_FORMAT_SIMPLE)

        assert fmt.format(record(logging.WARNING, "Store lock busy")) == "⚠️ Store lock busy"
        assert fmt.format(record(logging.INFO, "Spot monitor started")) == "Spot monitor started"

    def test_marked_message_is_left_alone(self):
        fmt = EmojiFormatter(LOG_FORMAT_SIMPLE)

        text = fmt.format(record(logging.ERROR, "📻 Tune failed: %s", "RPRT -11"))

        assert text == "📻 Tune failed: RPRT -11"

    def test_strip_markers(self):
        fmt = EmojiFormatter(LOG_FORMAT_SIMPLE, strip_markers=True)

        assert fmt.format(record(logging.INFO, "📡 RBN: %s", "Disconnected")) == "RBN: Disconnected"
        assert fmt.format(record(logging.WARNING, "Lock busy")) == "Lock busy"

    def test_record_is_not_mutated(self):
        fmt = EmojiFormatter(LOG_FORMAT_SIMPLE)
        rec = record(logging.WARNING, "Lock busy")

        fmt.format(rec)
        fmt.format(rec)

        assert rec.getMessage() == "Lock busy"


class TestSetupLogging:
    def test_levels_and_noisy_loggers(self, restore_root, monkeypatch):
        monkeypatch.setattr(logging_setup, "has_console", lambda: False)

        setup_logging(verbose=False)

        assert restore_root.level == logging.INFO
        assert len(restore_root.handlers) == 1
        assert restore_root.handlers[0].formatter.strip_markers
        assert logging.getLogger("asyncio").level == logging.WARNING

        setup_logging(verbose=True)

        assert restore_root.level == logging.DEBUG
        assert logging.getLogger("asyncio").level == logging.NOTSET

    def test_log_file(self, restore_root, tmp_path):
        path = tmp_path / "rbnvfd.log"

        setup_logging(console_output=False, log_file=str(path))
        logging.getLogger("rbnvfd.test").info("🧹 Purged %d stale spots", 3)
        for handler in restore_root.handlers:
            handler.flush()
            handler.close()

        line = path.read_text(encoding="utf-8").strip()
        assert line.endswith("| Purged 3 stale spots")
