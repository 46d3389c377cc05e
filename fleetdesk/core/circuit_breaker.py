"""
Circuit breaker guarding calls to the messaging channel.

Only provider outages count against the breaker. A refused request (bad
recipient, expired token) means the provider is up, so it never trips it.
"""
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type

import httpx
import structlog

from fleetdesk.core.exceptions import ServiceUnavailableError

logger = structlog.get_logger(__name__)

OUTAGE_EXCEPTIONS: Tuple[Type[BaseException], ...] = (
    ServiceUnavailableError,
    httpx.TransportError,
    ConnectionError,
)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """
    Args:
        failure_threshold: Consecutive outages that open the circuit
        success_threshold: Trial call successes needed to close it again
        timeout: Seconds the circuit stays open before probing
        half_open_max_calls: Trial calls admitted per half-open window
        counted_exceptions: Exception types treated as outages
    """

    failure_threshold: int = 5
    success_threshold: int = 2
    timeout: int = 60
    half_open_max_calls: int = 3
    counted_exceptions: Tuple[Type[BaseException], ...] = OUTAGE_EXCEPTIONS


@dataclass
class BreakerStats:
    calls: int = 0
    failures: int = 0
    rejected: int = 0
    times_opened: int = 0


class CircuitBreaker:
    """Fails fast while a provider is down, then lets a few trial calls through."""

    def __init__(
        self,
        service_name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self.opened_at: Optional[float] = None
        self.trials_admitted = 0
        self.trial_successes = 0
        self.stats = BreakerStats()

    def retry_in(self) -> float:
        """Seconds until an open circuit admits a trial call; 0 when not open."""
        if self.state != CircuitState.OPEN or self.opened_at is None:
            return 0.0
        return max(0.0, self.config.timeout - (self._clock() - self.opened_at))

    async def call_async(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Await ``func`` unless the circuit is open.

        Raises:
            ServiceUnavailableError: If the circuit rejects the call
        """
        self._admit()
        self.stats.calls += 1
        try:
            result = await func(*args, **kwargs)
        except self.config.counted_exceptions:
            self._record_failure()
            raise
        except Exception:
            self._record_success()
            raise
        self._record_success()
        return result

    def _admit(self) -> None:
        if self.state == CircuitState.OPEN:
            wait = self.retry_in()
            if wait > 0:
                self._reject(f"{self.service_name} is unavailable (circuit open)", wait)
            self._set_state(CircuitState.HALF_OPEN)

        if self.state == CircuitState.HALF_OPEN:
            if self.trials_admitted >= self.config.half_open_max_calls:
                self._reject(f"{self.service_name} is recovering (trial limit reached)", self.config.timeout)
            self.trials_admitted += 1

    def _reject(self, detail: str, wait: float) -> None:
        self.stats.rejected += 1
        logger.warning("Call rejected by circuit breaker", service=self.service_name,
                       state=self.state.value, retry_in_seconds=round(wait, 1))
        raise ServiceUnavailableError(self.service_name, detail, retry_after=max(1, math.ceil(wait)))

    def _record_failure(self) -> None:
        self.stats.failures += 1
        self.consecutive_failures += 1
        if self.state == CircuitState.OPEN:
            return
        if self.state == CircuitState.HALF_OPEN or self.consecutive_failures >= self.config.failure_threshold:
            self._set_state(CircuitState.OPEN)

    def _record_success(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            self.trial_successes += 1
            if self.trial_successes >= self.config.success_threshold:
                self._set_state(CircuitState.CLOSED)
        else:
            self.consecutive_failures = 0

    def _set_state(self, state: CircuitState) -> None:
        previous, self.state = self.state, state
        if state == CircuitState.OPEN:
            self.opened_at = self._clock()
            self.stats.times_opened += 1
        elif state == CircuitState.HALF_OPEN:
            self.trials_admitted = 0
            self.trial_successes = 0
        else:
            self.consecutive_failures = 0
            self.opened_at = None

        log = logger.warning if state == CircuitState.OPEN else logger.info
        log("Circuit state changed", service=self.service_name, previous=previous.value,
            state=state.value, consecutive_failures=self.consecutive_failures)

    def get_status(self) -> Dict[str, Any]:
        """Snapshot for the health endpoint."""
        return {
            "service": self.service_name,
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "failure_threshold": self.config.failure_threshold,
            "retry_in_seconds": round(self.retry_in(), 1),
            "calls": self.stats.calls,
            "failures": self.stats.failures,
            "rejected": self.stats.rejected,
            "times_opened": self.stats.times_opened,
        }
