"""
Thread-safe rate-limited logging.

Used where the same failure can repeat on every item of a batch or every
scheduler tick (notification channel down, RPC endpoint unreachable), so
the log keeps one line per distinct message per interval.
"""
import logging
import threading
from typing import Optional

from cachetools import TTLCache

logger = logging.getLogger(__name__)

# At most 256 distinct messages tracked; each suppresses repeats for 10 minutes
_DEFAULT_TTL = 600
_log_cache = TTLCache(maxsize=256, ttl=_DEFAULT_TTL)
_log_cache_lock = threading.RLock()


def rate_limited_log(
    message: str,
    level: str = "warning",
    logger_instance: Optional[logging.Logger] = None,
) -> bool:
    """
    Log a message unless the same message was logged recently.

    Args:
        message: Message to log
        level: Log level (debug, info, warning, error, critical)
        logger_instance: Logger to use (defaults to module logger)

    Returns:
        True if the message was emitted, False if it was suppressed
    """
    log_instance = logger_instance or logger
    log_method = getattr(log_instance, level.lower(), log_instance.warning)
    key = f"{level}:{message}"

    with _log_cache_lock:
        if key in _log_cache:
            return False
        log_method(message)
        _log_cache[key] = True
    return True


def reset_rate_limits() -> None:
    """Forget every suppressed message"""
    with _log_cache_lock:
        _log_cache.clear()
