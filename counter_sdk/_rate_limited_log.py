"""
Thread-safe rate-limited logging utilities.

Keeps repeated warnings (for example a ledger that stays unreachable across
many poll cycles) from flooding the log while still reporting the first
occurrence of each message.
"""
import logging
import threading
from typing import Optional

from cachetools import TTLCache

logger = logging.getLogger(__name__)

# At most 100 distinct messages tracked, each suppressed for up to an hour
_error_log_cache = TTLCache(maxsize=100, ttl=3600)
_error_log_cache_lock = threading.RLock()


def rate_limited_log(
    message: str,
    level: str = "warning",
    interval: int = 60,
    logger_instance: Optional[logging.Logger] = None
) -> bool:
    """
    Log a message with rate limiting, in a thread-safe manner.

    Args:
        message: Message to log
        level: Log level (debug, info, warning, error, critical)
        interval: Minimum interval between identical logs in seconds
        logger_instance: Logger to use (defaults to module logger)

    Returns:
        True if the message was emitted, False if it was suppressed
    """
    log_instance = logger_instance or logger
    log_method = getattr(log_instance, level.lower(), log_instance.warning)
    key = f"{level}:{message}"

    with _error_log_cache_lock:
        expires_at = _error_log_cache.get(key)
        now = _error_log_cache.timer()
        if expires_at is not None and now < expires_at:
            return False
        log_method(message)
        _error_log_cache[key] = now + interval
        return True


def reset_rate_limits() -> None:
    """Forget every suppressed message"""
    with _error_log_cache_lock:
        _error_log_cache.clear()
