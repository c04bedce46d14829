# homematch/utils.py
"""Shared utilities: logging setup and the retry policy used by outbound calls."""
import os
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional
from dotenv import load_dotenv

load_dotenv()

def get_logger(name=__name__):
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        level=getattr(logging, level, logging.INFO)
    )
    return logging.getLogger(name)

logger = get_logger("homematch")


def exponential_backoff(base: float = 0.5, jitter: float = 0.25) -> Callable[[int, BaseException], float]:
    """Delay of ``base * 2**attempt`` seconds plus up to ``jitter`` seconds of noise."""
    def _backoff(attempt: int, error: BaseException) -> float:
        return base * (2 ** attempt) + random.uniform(0, jitter)
    return _backoff


@dataclass
class RetryPolicy:
    """How many times to call, how long to wait, and which errors are worth another try."""
    max_attempts: int = 3
    backoff: Callable[[int, BaseException], float] = field(default_factory=exponential_backoff)
    retryable: Callable[[BaseException], bool] = lambda exc: True


def call_with_retry(fn: Callable[[], Any], policy: RetryPolicy,
                    sleep: Callable[[float], None] = time.sleep,
                    log: Optional[logging.Logger] = None) -> Any:
    """Call ``fn`` until it succeeds or the policy gives up.

    Non-retryable errors propagate immediately. When attempts run out the
    last error is raised.
    """
    log = log or logger
    attempts = max(1, policy.max_attempts)
    for attempt in range(attempts):
        try:
            return fn()
        except Exception as e:
            if not policy.retryable(e) or attempt >= attempts - 1:
                raise
            wait = policy.backoff(attempt, e)
            log.warning("Retryable error: %s, retrying in %.2f sec (attempt %d/%d)",
                        e, wait, attempt + 1, attempts)
            sleep(wait)
