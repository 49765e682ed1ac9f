"""Tests for the circuit breaker state machine."""

import asyncio

import pytest

from statsloader.core.errors import CircuitOpenError, StoreUnavailableError, VersionConflictError
from statsloader.engine.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOptions,
    CircuitStatus,
    with_circuit_breaker,
)


class Dependency:
    """Wrapped call whose outcome the test controls."""

    def __init__(self):
        self.calls = 0
        self.fail = True
        self.error: Exception = StoreUnavailableError("down")

    async def __call__(self) -> str:
        self.calls += 1
        if self.fail:
            raise self.error
        return "ok"


async def trip(breaker: CircuitBreaker, dependency: Dependency, times: int) -> None:
    for _ in range(times):
        with pytest.raises(StoreUnavailableError):
            await breaker.call(dependency)


@pytest.mark.asyncio
async def test_opens_after_threshold_and_rejects_without_calling(clock) -> None:
    breaker = CircuitBreaker("store", failure_threshold=3, reset_timeout=10.0, clock=clock)
    dependency = Dependency()

    await trip(breaker, dependency, 3)
    assert breaker.status == CircuitStatus.OPEN

    with pytest.raises(CircuitOpenError) as exc_info:
        await breaker.call(dependency)

    assert dependency.calls == 3
    assert exc_info.value.retry_after == pytest.approx(10.0)


@pytest.mark.asyncio
async def test_successes_decay_failure_count(clock) -> None:
    breaker = CircuitBreaker("store", failure_threshold=3, clock=clock)
    dependency = Dependency()

    await trip(breaker, dependency, 2)
    dependency.fail = False
    await breaker.call(dependency)
    assert breaker.state.failure_count == 1

    dependency.fail = True
    await trip(breaker, dependency, 1)
    assert breaker.status == CircuitStatus.CLOSED


@pytest.mark.asyncio
async def test_half_open_probe_success_closes(clock) -> None:
    breaker = CircuitBreaker("store", failure_threshold=2, reset_timeout=5.0, clock=clock)
    dependency = Dependency()
    await trip(breaker, dependency, 2)

    clock.advance(5.0)
    dependency.fail = False
    assert await breaker.call(dependency) == "ok"

    state = breaker.state
    assert state.status == CircuitStatus.CLOSED
    assert state.failure_count == 0


@pytest.mark.asyncio
async def test_half_open_probe_failure_reopens(clock) -> None:
    breaker = CircuitBreaker("store", failure_threshold=2, reset_timeout=5.0, clock=clock)
    dependency = Dependency()
    await trip(breaker, dependency, 2)

    clock.advance(5.0)
    await trip(breaker, dependency, 1)

    assert breaker.status == CircuitStatus.OPEN
    with pytest.raises(CircuitOpenError):
        await breaker.call(dependency)
    assert dependency.calls == 3


@pytest.mark.asyncio
async def test_half_open_lets_exactly_one_probe_through(clock) -> None:
    breaker = CircuitBreaker("store", failure_threshold=1, reset_timeout=5.0, clock=clock)
    dependency = Dependency()
    await trip(breaker, dependency, 1)
    clock.advance(5.0)

    release = asyncio.Event()

    async def slow_probe() -> str:
        await release.wait()
        return "ok"

    probe = asyncio.create_task(breaker.call(slow_probe))
    await asyncio.sleep(0)

    with pytest.raises(CircuitOpenError):
        await breaker.call(dependency)
    assert breaker.status == CircuitStatus.HALF_OPEN

    release.set()
    assert await probe == "ok"
    assert breaker.status == CircuitStatus.CLOSED
    assert dependency.calls == 1


@pytest.mark.asyncio
async def test_half_open_attempts_exhausted_reopens(clock) -> None:
    breaker = CircuitBreaker(
        "store",
        failure_threshold=1,
        reset_timeout=5.0,
        half_open_max_attempts=2,
        clock=clock,
        excluded=(VersionConflictError,),
    )
    dependency = Dependency()
    await trip(breaker, dependency, 1)
    clock.advance(5.0)

    # Excluded outcomes neither close nor reopen the circuit but use up probes
    dependency.error = VersionConflictError("U00001", 1)
    for _ in range(2):
        with pytest.raises(VersionConflictError):
            await breaker.call(dependency)
    assert breaker.status == CircuitStatus.OPEN


@pytest.mark.asyncio
async def test_excluded_errors_do_not_count(clock) -> None:
    breaker = CircuitBreaker("store", failure_threshold=1, clock=clock, excluded=(VersionConflictError,))
    dependency = Dependency()
    dependency.error = VersionConflictError("U00001", 1)

    for _ in range(3):
        with pytest.raises(VersionConflictError):
            await breaker.call(dependency)

    assert breaker.status == CircuitStatus.CLOSED
    assert breaker.state.failure_count == 0


@pytest.mark.asyncio
async def test_with_circuit_breaker_wraps_function(clock) -> None:
    dependency = Dependency()
    wrapped = with_circuit_breaker(
        dependency,
        CircuitBreakerOptions(failure_threshold=1, reset_timeout=1.0, half_open_max_attempts=1),
        name="wrapped",
        clock=clock,
    )

    with pytest.raises(StoreUnavailableError):
        await wrapped()
    with pytest.raises(CircuitOpenError):
        await wrapped()

    assert wrapped.breaker.status == CircuitStatus.OPEN
    wrapped.breaker.reset()
    assert wrapped.breaker.status == CircuitStatus.CLOSED
