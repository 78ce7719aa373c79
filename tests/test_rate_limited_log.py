"""
Tests for rate-limited logging.
"""
import logging
import threading
from unittest.mock import MagicMock, patch

from cachetools import TTLCache

from chainpilot._rate_limited_log import rate_limited_log, reset_rate_limits


class TestRateLimitedLog:
    def test_repeats_are_suppressed(self):
        mock_logger = MagicMock()

        assert rate_limited_log("RPC down", logger_instance=mock_logger)
        assert not rate_limited_log("RPC down", logger_instance=mock_logger)

        mock_logger.warning.assert_called_once_with("RPC down")

    def test_level_is_part_of_the_key(self):
        mock_logger = MagicMock()
        rate_limited_log("RPC down", level="warning", logger_instance=mock_logger)
        assert rate_limited_log("RPC down", level="error", logger_instance=mock_logger)
        mock_logger.error.assert_called_once_with("RPC down")

    def test_distinct_messages_pass(self):
        mock_logger = MagicMock()
        rate_limited_log("first", logger_instance=mock_logger)
        rate_limited_log("second", logger_instance=mock_logger)
        assert mock_logger.warning.call_count == 2

    def test_reset(self):
        mock_logger = MagicMock()
        rate_limited_log("again", level="info", logger_instance=mock_logger)
        reset_rate_limits()
        rate_limited_log("again", level="info", logger_instance=mock_logger)
        assert mock_logger.info.call_count == 2

    def test_unknown_level_falls_back_to_warning(self):
        mock_logger = logging.getLogger("chainpilot.test")
        with patch.object(mock_logger, "warning") as warning:
            rate_limited_log("odd level", level="verbose", logger_instance=mock_logger)
        warning.assert_called_once_with("odd level")

    def test_default_logger(self, caplog):
        with caplog.at_level(logging.WARNING, logger="chainpilot._rate_limited_log"):
            rate_limited_log("module logger")
        assert "module logger" in caplog.text

    def test_expiry(self):
        mock_logger = MagicMock()
        clock = [1000.0]
        with patch("chainpilot._rate_limited_log._log_cache", TTLCache(maxsize=8, ttl=600, timer=lambda: clock[0])):
            rate_limited_log("tick failed", logger_instance=mock_logger)
            clock[0] += 601
            rate_limited_log("tick failed", logger_instance=mock_logger)
        assert mock_logger.warning.call_count == 2

    def test_concurrent_callers_log_once(self):
        mock_logger = MagicMock()
        threads = [
            threading.Thread(target=rate_limited_log, args=("shared",), kwargs={"logger_instance": mock_logger})
            for _ in range(10)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        mock_logger.warning.assert_called_once_with("shared")
