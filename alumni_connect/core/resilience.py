"""
Retry logic for transient database failures on read paths.

Writes (connection requests, responses, message appends) must never be
wrapped here: replaying them could duplicate a side effect.
"""
import functools
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import OperationalError

from alumni_connect.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = settings.READ_RETRY_ATTEMPTS
    base_delay: float = settings.READ_RETRY_BASE_DELAY  # seconds
    max_delay: float = 5.0  # seconds
    exponential_base: float = 2.0
    retryable_exceptions: tuple = (OperationalError,)


DEFAULT_READ_RETRY = RetryConfig()


def retry_read(config: Optional[RetryConfig] = None):
    """
    Decorator for store read methods.

    The decorated method's owner must expose the SQLAlchemy session as
    ``self.db``; the session is rolled back before each new attempt so the
    retry starts from a clean transaction.
    """
    cfg = config or DEFAULT_READ_RETRY

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs) -> T:
            last_exception = None

            for attempt in range(cfg.max_retries + 1):
                try:
                    return func(self, *args, **kwargs)
                except cfg.retryable_exceptions as e:
                    last_exception = e
                    self.db.rollback()

                    if attempt < cfg.max_retries:
                        delay = min(
                            cfg.base_delay * (cfg.exponential_base ** attempt),
                            cfg.max_delay,
                        )
                        logger.warning(
                            f"Retry {attempt + 1}/{cfg.max_retries} for {func.__name__}: {e}. "
                            f"Waiting {delay:.1f}s..."
                        )
                        time.sleep(delay)
                    else:
                        logger.error(
                            f"All {cfg.max_retries} retries exhausted for {func.__name__}: {e}"
                        )

            raise last_exception

        return wrapper
    return decorator
