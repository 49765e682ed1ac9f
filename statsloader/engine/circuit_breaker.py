"""Circuit breaker guarding calls to an unreliable dependency.

The breaker is an explicit object owned by its caller, with an injectable
clock. State transitions happen under an ``asyncio.Lock``; the wrapped call
itself runs outside the lock so concurrent callers are not serialized.
"""

import asyncio
import dataclasses
import functools
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import BaseModel, Field

from statsloader.core.config import Settings, get_settings
from statsloader.core.errors import CircuitOpenError
from statsloader.core.logging import get_logger
from statsloader.observability.metrics import CIRCUIT_REJECTIONS, CIRCUIT_STATE

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitStatus(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


_STATE_GAUGE_VALUES = {
    CircuitStatus.CLOSED: 0,
    CircuitStatus.HALF_OPEN: 1,
    CircuitStatus.OPEN: 2,
}


@dataclass
class CircuitState:
    """Snapshot of a breaker's state."""

    status: CircuitStatus = CircuitStatus.CLOSED
    failure_count: int = 0
    last_failure_time: float | None = None
    half_open_attempts: int = 0


class CircuitBreakerOptions(BaseModel):
    """Circuit breaker options."""

    failure_threshold: int = Field(default=5, ge=1)
    reset_timeout: float = Field(default=60.0, ge=0, description="Seconds")
    half_open_max_attempts: int = Field(default=3, ge=1)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "CircuitBreakerOptions":
        settings = settings or get_settings()
        return cls(
            failure_threshold=settings.circuit_failure_threshold,
            reset_timeout=settings.circuit_reset_timeout,
            half_open_max_attempts=settings.circuit_half_open_max_attempts,
        )


class CircuitBreaker:
    """CLOSED / OPEN / HALF_OPEN state machine.

    In CLOSED every failure increments the failure counter and every success
    decays it by one; reaching ``failure_threshold`` opens the circuit. While
    OPEN calls are rejected with ``CircuitOpenError`` until ``reset_timeout``
    has elapsed since the last failure. The circuit then lets one probe
    through at a time: a successful probe closes it, a failed probe reopens
    it, and so does running out of ``half_open_max_attempts`` probes.

    Exceptions listed in ``excluded`` are outcomes of a healthy dependency
    (a rejected precondition, say) and pass through without changing state.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        half_open_max_attempts: int = 3,
        clock: Callable[[], float] = time.monotonic,
        excluded: tuple[type[BaseException], ...] = (),
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if half_open_max_attempts < 1:
            raise ValueError("half_open_max_attempts must be at least 1")
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.half_open_max_attempts = half_open_max_attempts
        self._clock = clock
        self._excluded = excluded
        self._state = CircuitState()
        self._probe_in_flight = False
        self._lock = asyncio.Lock()
        self._publish()

    @classmethod
    def from_options(
        cls,
        name: str,
        options: CircuitBreakerOptions | None = None,
        **kwargs: Any,
    ) -> "CircuitBreaker":
        options = options or CircuitBreakerOptions.from_settings()
        return cls(
            name,
            failure_threshold=options.failure_threshold,
            reset_timeout=options.reset_timeout,
            half_open_max_attempts=options.half_open_max_attempts,
            **kwargs,
        )

    @property
    def state(self) -> CircuitState:
        """Copy of the current state."""
        return dataclasses.replace(self._state)

    @property
    def status(self) -> CircuitStatus:
        return self._state.status

    def reset(self) -> None:
        """Force the circuit closed."""
        self._state = CircuitState()
        self._probe_in_flight = False
        self._publish()

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run ``fn`` through the breaker.

        Raises:
            CircuitOpenError: If the circuit rejects the call
        """
        async with self._lock:
            is_probe = self._admit()

        try:
            result = await fn(*args, **kwargs)
        except self._excluded:
            async with self._lock:
                self._on_neutral(is_probe)
            raise
        except Exception:
            async with self._lock:
                self._on_failure(is_probe)
            raise
        except BaseException:
            # Cancelled probes still consume a half-open attempt
            async with self._lock:
                self._on_neutral(is_probe)
            raise

        async with self._lock:
            self._on_success(is_probe)
        return result

    def _admit(self) -> bool:
        """Decide whether a call may proceed; returns True for a half-open probe."""
        state = self._state
        now = self._clock()

        if state.status == CircuitStatus.OPEN:
            elapsed = now - (state.last_failure_time or now)
            if elapsed < self.reset_timeout:
                raise self._reject(self.reset_timeout - elapsed)
            self._transition(CircuitStatus.HALF_OPEN)
            state.half_open_attempts = 0

        if state.status == CircuitStatus.HALF_OPEN:
            if self._probe_in_flight:
                raise self._reject(0.0)
            if state.half_open_attempts >= self.half_open_max_attempts:
                state.last_failure_time = now
                self._transition(CircuitStatus.OPEN)
                raise self._reject(self.reset_timeout)
            state.half_open_attempts += 1
            self._probe_in_flight = True
            return True

        return False

    def _reject(self, retry_after: float) -> CircuitOpenError:
        CIRCUIT_REJECTIONS.labels(circuit=self.name).inc()
        return CircuitOpenError(self.name, retry_after=retry_after)

    def _on_success(self, is_probe: bool) -> None:
        state = self._state
        if is_probe:
            self._probe_in_flight = False
            state.failure_count = 0
            state.half_open_attempts = 0
            self._transition(CircuitStatus.CLOSED)
        elif state.status == CircuitStatus.CLOSED and state.failure_count > 0:
            state.failure_count -= 1

    def _on_failure(self, is_probe: bool) -> None:
        state = self._state
        state.last_failure_time = self._clock()
        if is_probe:
            self._probe_in_flight = False
            self._transition(CircuitStatus.OPEN)
            return
        state.failure_count += 1
        if state.status == CircuitStatus.CLOSED and state.failure_count >= self.failure_threshold:
            self._transition(CircuitStatus.OPEN)

    def _on_neutral(self, is_probe: bool) -> None:
        if not is_probe:
            return
        self._probe_in_flight = False
        state = self._state
        if state.half_open_attempts >= self.half_open_max_attempts:
            state.last_failure_time = self._clock()
            self._transition(CircuitStatus.OPEN)

    def _transition(self, status: CircuitStatus) -> None:
        previous = self._state.status
        if previous == status:
            return
        self._state.status = status
        self._publish()
        log = logger.warning if status == CircuitStatus.OPEN else logger.info
        log(
            "Circuit state changed",
            circuit=self.name,
            from_status=previous.value,
            to_status=status.value,
            failure_count=self._state.failure_count,
        )

    def _publish(self) -> None:
        CIRCUIT_STATE.labels(circuit=self.name).set(_STATE_GAUGE_VALUES[self._state.status])


def with_circuit_breaker(
    fn: Callable[..., Awaitable[T]],
    options: CircuitBreakerOptions | None = None,
    *,
    name: str | None = None,
    clock: Callable[[], float] = time.monotonic,
    excluded: tuple[type[BaseException], ...] = (),
) -> Callable[..., Awaitable[T]]:
    """Wrap a coroutine function in its own circuit breaker.

    The breaker is exposed as the wrapper's ``breaker`` attribute.

    Args:
        fn: Coroutine function to protect
        options: Breaker options (settings defaults if omitted)
        name: Breaker name (function name if omitted)
        clock: Monotonic clock
        excluded: Exceptions that do not count as failures

    Returns:
        Wrapped coroutine function
    """
    breaker = CircuitBreaker.from_options(
        name or getattr(fn, "__name__", "circuit"),
        options,
        clock=clock,
        excluded=excluded,
    )

    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        return await breaker.call(fn, *args, **kwargs)

    wrapper.breaker = breaker  # type: ignore[attr-defined]
    return wrapper
