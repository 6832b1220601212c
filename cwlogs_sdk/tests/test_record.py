"""Tests for cwlogs_sdk.record module."""

import pytest

from cwlogs_sdk.record import LogRecord, byte_length, now_ms, truncate_message


class TestLogRecord:
    """Tests for LogRecord."""

    def test_size_is_encoded_bytes(self):
        record = LogRecord(1000, "héllo")
        assert record.size_bytes == 6

    def test_to_event(self):
        record = LogRecord(1700000000000, "hello")
        assert record.to_event() == {"timestamp": 1700000000000, "message": "hello"}

    def test_is_immutable(self):
        record = LogRecord(1, "a")
        with pytest.raises(AttributeError):
            record.message = "b"

    def test_now_ms_is_epoch_millis(self):
        assert now_ms() > 1_600_000_000_000

    def test_lone_surrogate_replaced(self):
        # e.g. undecodable bytes from os.fsdecode()
        record = LogRecord(1, "bad \udcff byte")
        assert record.message == "bad \ufffd byte"
        assert record.size_bytes == 12
        record.message.encode("utf-8")

    def test_cached_size_not_in_eq_or_repr(self):
        assert LogRecord(1, "a") == LogRecord(1, "a")
        assert repr(LogRecord(1, "a")) == "LogRecord(timestamp_ms=1, message='a')"


class TestTruncateMessage:
    """Tests for truncate_message()."""

    def test_ascii_truncation(self):
        result = truncate_message("x" * 300000, 256000, " TRUNCATED")
        assert result == "x" * (256000 - 10) + " TRUNCATED"
        assert byte_length(result) == 256000

    def test_does_not_split_multibyte_characters(self):
        # each "€" is 3 bytes; 97 bytes leave room for 32 whole characters
        result = truncate_message("€" * 100, 100, "...")
        assert result == "€" * 32 + "..."
        assert byte_length(result) <= 100
        result.encode("utf-8")

    def test_retruncating_stays_within_limit(self):
        once = truncate_message("é" * 500, 101, " [cut]")
        twice = truncate_message(once, 101, " [cut]")
        assert byte_length(once) <= 101
        assert byte_length(twice) <= 101
        assert twice.startswith("é" * 40)
        assert twice.endswith(" [cut]")

    def test_emoji_boundary(self):
        result = truncate_message("a" + "😀" * 10, 10, "")
        # 1 + 4 + 4 bytes fit, the third emoji would be split
        assert result == "a😀😀"

    def test_truncates_text_with_lone_surrogates(self):
        result = truncate_message("\udcff" * 10, 7, "")
        assert result == "\ufffd\ufffd"
        assert byte_length("\udcff") == 3

    def test_suffix_larger_than_limit(self):
        with pytest.raises(ValueError, match="larger than max"):
            truncate_message("hello", 3, "[TRUNCATED]")
