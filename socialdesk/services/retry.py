import time
import logging
from dataclasses import dataclass, field
from typing import Callable, TypeVar

import requests

from socialdesk.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


def linear_backoff(step: float) -> Callable[[int], float]:
    """attempt 1 -> step, attempt 2 -> 2*step, ..."""
    return lambda attempt: attempt * step


def is_transport_error(exc: BaseException) -> bool:
    # A well-formed HTTP error response is a provider decision, not a transient failure
    return isinstance(exc, (requests.ConnectionError, requests.Timeout))


class RetryExhausted(Exception):
    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(str(last_error))
        self.attempts = attempts
        self.last_error = last_error


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    timeout: float = 30.0
    backoff: Callable[[int], float] = field(default_factory=lambda: linear_backoff(2.0))
    retryable: Callable[[BaseException], bool] = is_transport_error
    sleep: Callable[[float], None] = time.sleep

    def run(self, fn: Callable[[float], T], label: str = "call") -> T:
        """
        Calls fn(timeout) until it returns or raises a non-retryable error.
        Retryable errors on the last attempt surface as RetryExhausted.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return fn(self.timeout)
            except Exception as e:
                if not self.retryable(e):
                    raise
                if attempt >= self.max_attempts:
                    raise RetryExhausted(attempt, e) from e
                delay = self.backoff(attempt)
                logger.warning(f"{label} failed (attempt {attempt}/{self.max_attempts}), retrying in {delay}s: {e}")
                self.sleep(delay)


def default_publish_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.publish_max_attempts,
        timeout=settings.publish_timeout_seconds,
        backoff=linear_backoff(settings.publish_backoff_seconds),
    )


def single_attempt_policy(timeout: float | None = None) -> RetryPolicy:
    """Used for reel and carousel phases: a partially finished upload is never resumed."""
    return RetryPolicy(max_attempts=1, timeout=timeout or settings.publish_timeout_seconds)
