"""
Unit tests for indoorloc/utils/log.py (rate-limited logging).

Run with: pytest tests/core/utils/test_log.py -v
"""

import logging
import unittest

import pytest

from indoorloc.utils.log import RateLimitedLogger, setup_logging

LOGGER_NAME = "indoorloc.tests.ratelimit"


class TestRateLimitedLogger(unittest.TestCase):
    """Test suite for sample-time rate limiting."""

    def setUp(self) -> None:
        self.limited = RateLimitedLogger(logging.getLogger(LOGGER_NAME), interval_ms=1000.0)

    def test_suppresses_within_interval(self) -> None:
        """A key fires once per interval of sample time."""
        with self.assertLogs(LOGGER_NAME, level="WARNING") as cm:
            assert self.limited.warning("k", 0.0, "first")
            assert not self.limited.warning("k", 500.0, "second")
            assert self.limited.warning("k", 1000.0, "third")
        assert len(cm.output) == 2
        assert "1 similar messages suppressed" in cm.output[1]

    def test_keys_are_independent(self) -> None:
        """Different keys do not suppress each other."""
        with self.assertLogs(LOGGER_NAME, level="INFO") as cm:
            self.limited.info("a", 0.0, "a")
            self.limited.info("b", 10.0, "b")
        assert len(cm.output) == 2

    def test_none_timestamp_always_emits(self) -> None:
        with self.assertLogs(LOGGER_NAME, level="WARNING") as cm:
            self.limited.warning("k", None, "x")
            self.limited.warning("k", None, "y")
        assert len(cm.output) == 2

    def test_reset(self) -> None:
        """reset() forgets the last emission times."""
        with self.assertLogs(LOGGER_NAME, level="WARNING") as cm:
            self.limited.warning("k", 0.0, "x")
            self.limited.reset()
            self.limited.warning("k", 1.0, "y")
        assert len(cm.output) == 2


class TestSetupLogging(unittest.TestCase):
    def test_unknown_level(self) -> None:
        with pytest.raises(ValueError, match="Unknown log level"):
            setup_logging("LOUD")


if __name__ == "__main__":
    unittest.main()
