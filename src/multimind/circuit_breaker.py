"""
multimind: Circuit breaker for per-provider fault tolerance.

Prevents cascading load against a degraded upstream by failing fast once a
failure threshold is crossed, then probing for recovery with a bounded number
of half-open calls. Knows nothing about HTTP; it wraps any async callable.

State machine:
    CLOSED ──(failures >= threshold)──> OPEN
    OPEN ──(now >= next_attempt)──> HALF_OPEN
    HALF_OPEN ──(successes >= success_threshold)──> CLOSED
    HALF_OPEN ──(any failure, or probe budget exhausted)──> OPEN
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from multimind.errors import CircuitOpenError, RequestTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RECENT_ERROR_LIMIT = 10


class CircuitState(Enum):
    """Provider availability as seen by the breaker."""

    CLOSED = "closed"  # Normal operation, calls flow through
    OPEN = "open"  # Tripped, calls are rejected
    HALF_OPEN = "half_open"  # Probing, limited calls allowed


@dataclass
class CircuitBreakerConfig:
    """Configuration for a circuit breaker.

    Attributes:
        failure_threshold: Consecutive failures before the circuit opens.
        reset_timeout: Seconds to stay OPEN before probing.
        half_open_max_calls: Probe calls allowed while HALF_OPEN.
        success_threshold: Successes in HALF_OPEN needed to close the circuit.
        call_timeout: Upper bound in seconds for each wrapped call.
        monitor_interval: Seconds between background health checks.
    """

    failure_threshold: int = 5
    reset_timeout: float = 60.0
    half_open_max_calls: int = 3
    success_threshold: int = 1
    call_timeout: float = 30.0
    monitor_interval: float = 30.0


class CircuitBreaker:
    """Per-provider circuit breaker.

    Not thread-safe: every method is expected to run on the event loop that
    owns the breaker.

    Example::

        cb = CircuitBreaker("openai", CircuitBreakerConfig(
            failure_threshold=3,
            reset_timeout=30.0,
        ))

        result = await cb.execute(lambda: client.send_message("Hi", "gpt-4"))
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.time,
        excluded_exceptions: tuple[type[BaseException], ...] = (),
    ) -> None:
        """
        Args:
            name: Label used in logs and stats.
            config: Thresholds and timeouts.
            clock: Time source in seconds.
            excluded_exceptions: Errors that pass through ``execute`` without
                counting as failures (caller mistakes rather than upstream faults).
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._excluded = excluded_exceptions
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._half_open_calls = 0
        self._last_failure_time: float | None = None
        self._last_success_time: float | None = None
        self._next_attempt: float | None = None
        self._last_state_change: float = clock()
        self._total_trips = 0
        self._recent_errors: list[str] = []
        self._monitor_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> CircuitState:
        """State after applying any due OPEN → HALF_OPEN move."""
        if self._state == CircuitState.OPEN and self._should_half_open():
            self._transition_to(CircuitState.HALF_OPEN)
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def next_attempt(self) -> float | None:
        """When an OPEN circuit will let the next call probe. None unless OPEN."""
        return self._next_attempt

    def is_available(self) -> bool:
        """True if a call made now would not be rejected outright."""
        state = self.state
        if state == CircuitState.HALF_OPEN:
            return self._half_open_calls < self.config.half_open_max_calls
        return state == CircuitState.CLOSED

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` under circuit breaker protection.

        Raises:
            CircuitOpenError: The circuit is OPEN, or the half-open probe budget
                is spent. ``fn`` is not invoked.
            RequestTimeoutError: ``fn`` exceeded ``call_timeout``.
        """
        state = self.state
        if state == CircuitState.OPEN:
            raise CircuitOpenError(f"Circuit breaker '{self.name}' is open")

        if state == CircuitState.HALF_OPEN:
            if self._half_open_calls >= self.config.half_open_max_calls:
                self._trip()
                raise CircuitOpenError(
                    f"Circuit breaker '{self.name}' maximum half-open calls exceeded"
                )
            self._half_open_calls += 1

        try:
            result = await asyncio.wait_for(fn(), timeout=self.config.call_timeout)
        except asyncio.TimeoutError:
            error = RequestTimeoutError(
                f"Request timed out after {self.config.call_timeout}s"
            )
            self.record_failure(str(error))
            raise error from None
        except self._excluded:
            if self._state == CircuitState.HALF_OPEN and self._half_open_calls > 0:
                # Caller-side errors release their half-open slot
                self._half_open_calls -= 1
            raise
        except Exception as e:
            self.record_failure(str(e))
            raise

        self.record_success()
        return result

    def record_success(self) -> None:
        """Record a successful call."""
        self._failure_count = 0
        self._success_count += 1
        self._last_success_time = self._clock()

        if self._state == CircuitState.HALF_OPEN:
            if self._success_count >= self.config.success_threshold:
                self._close()

    def record_failure(self, error: str | None = None) -> None:
        """Record a failed call.

        Args:
            error: Optional error description for diagnostics.
        """
        self._failure_count += 1
        self._success_count = 0
        self._last_failure_time = self._clock()

        if error:
            self._recent_errors.append(error)
            if len(self._recent_errors) > RECENT_ERROR_LIMIT:
                self._recent_errors = self._recent_errors[-RECENT_ERROR_LIMIT:]

        if self._state == CircuitState.HALF_OPEN:
            # Any failure during a probe reopens
            self._trip()
        elif (
            self._state == CircuitState.CLOSED
            and self._failure_count >= self.config.failure_threshold
        ):
            self._trip()

    def reset(self) -> None:
        """Close the circuit and forget all counters."""
        self._close()
        self._success_count = 0
        self._recent_errors.clear()

    def check_health(self) -> None:
        """One monitor tick.

        Closes a HALF_OPEN circuit that has already seen a success, and forgets
        stale failures in CLOSED state once ``reset_timeout`` passes quietly.
        """
        if self._state == CircuitState.HALF_OPEN and self._success_count > 0:
            self._close()

        if (
            self._state == CircuitState.CLOSED
            and self._last_failure_time is not None
            and self._clock() - self._last_failure_time > self.config.reset_timeout
        ):
            self._failure_count = 0
            self._last_failure_time = None

    def start_monitoring(self) -> None:
        """Run ``check_health`` every ``monitor_interval`` on the running loop."""
        if self._monitor_task is None or self._monitor_task.done():
            self._monitor_task = asyncio.get_running_loop().create_task(self._monitor())

    async def stop_monitoring(self) -> None:
        if self._monitor_task is not None:
            self._monitor_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._monitor_task
            self._monitor_task = None

    def get_stats(self) -> dict[str, Any]:
        """Snapshot of state, counters and recent errors."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "half_open_calls": self._half_open_calls,
            "total_trips": self._total_trips,
            "last_failure": self._last_failure_time,
            "last_success": self._last_success_time,
            "next_attempt": self._next_attempt,
            "last_state_change": self._last_state_change,
            "recent_errors": list(self._recent_errors),
            "config": {
                "failure_threshold": self.config.failure_threshold,
                "reset_timeout": self.config.reset_timeout,
                "half_open_max_calls": self.config.half_open_max_calls,
                "call_timeout": self.config.call_timeout,
            },
        }

    async def _monitor(self) -> None:
        while True:
            await asyncio.sleep(self.config.monitor_interval)
            self.check_health()

    def _should_half_open(self) -> bool:
        """True once ``reset_timeout`` has elapsed since the circuit opened."""
        if self._next_attempt is None:
            return False
        return self._clock() >= self._next_attempt

    def _trip(self) -> None:
        if self._state != CircuitState.OPEN:
            self._total_trips += 1
        self._transition_to(CircuitState.OPEN)
        self._next_attempt = self._clock() + self.config.reset_timeout

    def _close(self) -> None:
        self._transition_to(CircuitState.CLOSED)
        self._failure_count = 0
        self._half_open_calls = 0

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._last_state_change = self._clock()
        if new_state != CircuitState.OPEN:
            self._next_attempt = None
        if new_state == CircuitState.HALF_OPEN:
            self._half_open_calls = 0
            self._success_count = 0
        if old_state != new_state:
            logger.info(
                f"Circuit breaker '{self.name}': {old_state.value} → {new_state.value}"
            )
