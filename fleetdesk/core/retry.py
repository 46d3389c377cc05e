"""
Retry logic with exponential backoff using tenacity.
"""
from typing import Callable, Optional
from dataclasses import dataclass
import httpx
import openai
import structlog
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    RetryCallState,
)

from fleetdesk.core.exceptions import (
    ServiceUnavailableError,
    ReasoningServiceRateLimitError,
    ReasoningServiceTimeoutError,
)

logger = structlog.get_logger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry logic."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    retryable_exceptions: tuple = (
        ConnectionError,
        TimeoutError,
        OSError,
    )


def create_async_retry_decorator(
    config: Optional[RetryConfig] = None,
    service_name: str = "Unknown Service",
) -> Callable:
    """Create a retry decorator for async functions with exponential backoff."""

    config = config or RetryConfig()

    def _before_sleep(retry_state: RetryCallState) -> None:
        """Log retry attempts."""
        logger.warning(
            "Retrying failed async operation",
            service=service_name,
            attempt=retry_state.attempt_number,
            max_attempts=config.max_attempts,
            delay=retry_state.next_action.sleep,
            exception=str(retry_state.outcome.exception()),
        )

    wait_strategy = wait_exponential(
        multiplier=config.base_delay,
        exp_base=config.exponential_base,
        max=config.max_delay,
    )

    return retry(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_strategy,
        retry=retry_if_exception_type(config.retryable_exceptions),
        before_sleep=_before_sleep,
        reraise=True,
    )


def get_transcription_retry_config() -> RetryConfig:
    """Voice-note downloads and transcription: two attempts, network failures only."""
    return RetryConfig(
        max_attempts=2,
        base_delay=1.0,
        max_delay=8.0,
        exponential_base=2.0,
        retryable_exceptions=(
            ServiceUnavailableError,
            httpx.TransportError,
            openai.APIConnectionError,
            openai.APITimeoutError,
        ),
    )


def get_reasoning_retry_config() -> RetryConfig:
    """Reasoning service calls: retried on timeouts and rate limits."""
    return RetryConfig(
        max_attempts=3,
        base_delay=1.0,
        max_delay=10.0,
        exponential_base=2.0,
        retryable_exceptions=(
            ReasoningServiceTimeoutError,
            ReasoningServiceRateLimitError,
        ),
    )
