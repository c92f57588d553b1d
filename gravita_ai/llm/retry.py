"""Stateless retry policy for routed LLM calls."""
from dataclasses import dataclass
from enum import Enum

from .errors import EmptyResponse, ProviderCallFailed

# Hard ceiling on attempts per request (1 initial + 4 retries). Bounds spend.
MAX_ATTEMPTS = 5

RETRYABLE_ERRORS = (ProviderCallFailed, EmptyResponse)


class RetryDecision(Enum):
    RETRY = "retry"
    STOP = "stop"


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt cap and exponential backoff bounds (seconds)."""
    max_attempts: int = MAX_ATTEMPTS
    base_delay: float = 1.0
    max_delay: float = 16.0

    def __post_init__(self):
        if not 1 <= self.max_attempts <= MAX_ATTEMPTS:
            raise ValueError(f"max_attempts must be between 1 and {MAX_ATTEMPTS}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.llm_max_retries,
            base_delay=settings.llm_retry_delay_ms / 1000,
            max_delay=settings.llm_retry_max_delay_ms / 1000,
        )


def is_retryable(error: BaseException) -> bool:
    return isinstance(error, RETRYABLE_ERRORS)


def decide(attempt: int, error: BaseException, policy: RetryPolicy) -> RetryDecision:
    """Decide whether attempt number `attempt` (1-based) may be followed by another."""
    if attempt >= policy.max_attempts or not is_retryable(error):
        return RetryDecision.STOP
    return RetryDecision.RETRY


def backoff_delay(attempt: int, policy: RetryPolicy) -> float:
    """Delay before the attempt following `attempt`."""
    delay = policy.base_delay * (2 ** (attempt - 1))
    return min(delay, policy.max_delay)
