"""
Retry policy for Streamable HTTP requests.

Exponential backoff with a cap:
``min(base * 2**attempt, max_delay)``.
"""

from dataclasses import dataclass, field
from typing import Callable

from ..errors import HttpStatusError, RequestAbortedError


def _retry_everything(error: BaseException, attempt: int) -> bool:
    return True


@dataclass
class RetryPolicy:
    """Retry settings for ``HttpTransport.request``."""

    max_retries: int = 2
    base_delay: float = 0.3
    max_delay: float = 2.0
    should_retry: Callable[[BaseException, int], bool] = field(default=_retry_everything)

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got: {self.max_retries}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Retry delays must be non-negative")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Backoff delay in seconds after a failed attempt (0-based)."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    def allows_retry(self, error: BaseException, attempt: int) -> bool:
        """
        Decide whether a failed attempt may be retried.

        Client errors (4xx) and caller aborts are never retried, whatever
        ``should_retry`` says.

        Args:
            error: The failure raised by the attempt
            attempt: 0-based index of the failed attempt

        Returns:
            True if another attempt should be made
        """
        if isinstance(error, HttpStatusError) and error.is_client_error:
            return False
        if isinstance(error, RequestAbortedError):
            return False
        if attempt >= self.max_retries:
            return False
        return bool(self.should_retry(error, attempt))


__all__ = ["RetryPolicy"]
