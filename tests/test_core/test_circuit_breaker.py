"""
Tests for the channel circuit breaker.
"""
import httpx
import pytest

from fleetdesk.core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from fleetdesk.core.exceptions import ServiceUnavailableError


class Ticker:
    """Monotonic clock the tests move by hand."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


async def outage():
    raise ConnectionError("WhatsApp unavailable")


async def refused():
    request = httpx.Request("POST", "https://graph.example/messages")
    raise httpx.HTTPStatusError("bad recipient", request=request, response=httpx.Response(400, request=request))


async def delivered():
    return "wamid.ok"


@pytest.fixture
def ticker():
    return Ticker()


@pytest.fixture
def breaker(ticker):
    config = CircuitBreakerConfig(failure_threshold=3, success_threshold=2, timeout=30, half_open_max_calls=2)
    return CircuitBreaker("WhatsApp", config, clock=ticker)


async def trip(breaker):
    for _ in range(breaker.config.failure_threshold):
        with pytest.raises(ConnectionError):
            await breaker.call_async(outage)


class TestClosedCircuit:
    def test_defaults(self):
        config = CircuitBreakerConfig()
        assert (config.failure_threshold, config.success_threshold, config.timeout) == (5, 2, 60)
        assert ConnectionError in config.counted_exceptions

    @pytest.mark.asyncio
    async def test_success_clears_failure_streak(self, breaker):
        with pytest.raises(ConnectionError):
            await breaker.call_async(outage)
        assert breaker.consecutive_failures == 1

        assert await breaker.call_async(delivered) == "wamid.ok"
        assert breaker.consecutive_failures == 0
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_refused_request_does_not_count(self, breaker):
        for _ in range(5):
            with pytest.raises(httpx.HTTPStatusError):
                await breaker.call_async(refused)

        assert breaker.state == CircuitState.CLOSED
        assert breaker.stats.failures == 0
        assert breaker.stats.calls == 5


class TestOpenCircuit:
    @pytest.mark.asyncio
    async def test_opens_at_threshold_and_fails_fast(self, breaker, ticker):
        await trip(breaker)
        assert breaker.state == CircuitState.OPEN

        ticker.now += 10
        with pytest.raises(ServiceUnavailableError) as exc_info:
            await breaker.call_async(delivered)

        assert exc_info.value.service_name == "WhatsApp"
        assert exc_info.value.retry_after == 20
        assert breaker.stats.rejected == 1
        assert breaker.stats.calls == 3

    @pytest.mark.asyncio
    async def test_trial_calls_close_after_timeout(self, breaker, ticker):
        await trip(breaker)
        ticker.now += 31

        await breaker.call_async(delivered)
        assert breaker.state == CircuitState.HALF_OPEN
        await breaker.call_async(delivered)
        assert breaker.state == CircuitState.CLOSED
        assert breaker.retry_in() == 0.0

    @pytest.mark.asyncio
    async def test_failed_trial_reopens(self, breaker, ticker):
        await trip(breaker)
        ticker.now += 31

        with pytest.raises(ConnectionError):
            await breaker.call_async(outage)

        assert breaker.state == CircuitState.OPEN
        assert breaker.stats.times_opened == 2
        assert breaker.retry_in() == 30

    @pytest.mark.asyncio
    async def test_trial_call_limit(self, breaker, ticker):
        await trip(breaker)
        ticker.now += 31
        breaker.config.success_threshold = 5

        await breaker.call_async(delivered)
        await breaker.call_async(delivered)
        with pytest.raises(ServiceUnavailableError):
            await breaker.call_async(delivered)


class TestStatus:
    @pytest.mark.asyncio
    async def test_status_snapshot(self, breaker, ticker):
        await trip(breaker)
        ticker.now += 5

        status = breaker.get_status()

        assert status["service"] == "WhatsApp"
        assert status["state"] == "open"
        assert status["retry_in_seconds"] == 25.0
        assert status["failures"] == 3
        assert status["times_opened"] == 1
