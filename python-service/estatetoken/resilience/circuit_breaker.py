"""Circuit breaker for guarded dependencies.

Provides per-dependency circuit breakers with:
- Three states: CLOSED (normal), OPEN (failing), HALF_OPEN (testing)
- Configurable failure threshold and reset timeout
- Trial calls that close the circuit after enough successes
- A registry so each dependency gets exactly one breaker
"""

import functools
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..errors import AppError, ErrorCategory, ErrorSeverity

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Dependency failing, reject calls
    HALF_OPEN = "half_open"  # Testing if dependency recovered


@dataclass
class CircuitBreakerConfig:
    """Configuration for a circuit breaker."""

    failure_threshold: int = 5  # Failures before opening
    reset_timeout: float = 60.0  # Seconds before a trial call is allowed
    successes_to_close: int = 3  # Half-open successes needed to close
    half_open_max_calls: Optional[int] = None  # Concurrent trial calls, None for no limit

    def __post_init__(self):
        if self.failure_threshold < 1:
            raise ValueError(f"failure_threshold must be >= 1, got {self.failure_threshold}")
        if self.successes_to_close < 1:
            raise ValueError(f"successes_to_close must be >= 1, got {self.successes_to_close}")
        if self.reset_timeout < 0:
            raise ValueError(f"reset_timeout must be >= 0, got {self.reset_timeout}")
        if self.half_open_max_calls is not None and self.half_open_max_calls < 1:
            raise ValueError(
                f"half_open_max_calls must be >= 1, got {self.half_open_max_calls}"
            )


class CircuitOpenError(AppError):
    """Raised when a breaker rejects a call without running it."""

    def __init__(self, name: str, retry_after: float = 0.0):
        super().__init__(
            f"Circuit breaker is OPEN for {name}. Service temporarily unavailable.",
            category=ErrorCategory.NETWORK,
            severity=ErrorSeverity.MEDIUM,
            context={"breaker": name, "retry_after": retry_after},
            user_message="Service temporarily unavailable, please try again later.",
            retryable=False,
        )
        self.name = name
        self.retry_after = retry_after


StateChangeListener = Callable[[str, CircuitState, CircuitState], None]


class CircuitBreaker:
    """Circuit breaker protecting calls to one dependency.

    Usage:
        breaker = CircuitBreaker("stripe", CircuitBreakerConfig(failure_threshold=3))
        intent = await breaker.execute(lambda: stripe.create_intent(amount))

        # Or wrap the callable once:
        create_intent = breaker.protect(stripe.create_intent)
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        on_state_change: Optional[StateChangeListener] = None,
    ):
        """Initialize circuit breaker.

        Args:
            name: Dependency name for logging and status
            config: Circuit breaker configuration
            clock: Monotonic time source in seconds
            on_state_change: Observer called with (name, old_state, new_state)
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._listeners: list[StateChangeListener] = []
        if on_state_change is not None:
            self._listeners.append(on_state_change)

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._half_open_successes = 0
        self._trial_calls = 0  # Trial calls in flight, across OPEN and HALF_OPEN periods
        self._generation = 0  # Bumped on every transition and failed trial
        self._last_failure_time: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        """Current state. Reading it never triggers a transition."""
        with self._lock:
            return self._state

    def get_state(self) -> CircuitState:
        """Current state."""
        return self.state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    @property
    def half_open_successes(self) -> int:
        with self._lock:
            return self._half_open_successes

    @property
    def last_failure_time(self) -> Optional[float]:
        with self._lock:
            return self._last_failure_time

    def add_listener(self, listener: StateChangeListener) -> None:
        """Register a state change observer."""
        self._listeners.append(listener)

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run an operation under circuit breaker protection.

        Each call causes at most one state transition. Once the reset timeout
        has passed, an OPEN circuit admits trial calls while still reporting
        OPEN; a successful trial moves it to HALF_OPEN, a failed one keeps it
        OPEN for another reset timeout. Closing is decided by calls made while
        HALF_OPEN.

        Args:
            operation: Zero-argument async callable

        Returns:
            The operation's result

        Raises:
            CircuitOpenError: If the circuit rejects the call
            Exception: Whatever the operation raised
        """
        trial, holds_slot = self._admit()

        try:
            result = await operation()
        except Exception:
            self._record_failure(trial)
            raise
        else:
            self._record_success(trial)
            return result
        finally:
            if holds_slot:
                with self._lock:
                    self._trial_calls -= 1

    def protect(self, func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        """Wrap an async callable so every call goes through execute.

        Args:
            func: Async callable to protect

        Returns:
            Protected callable
        """

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            return await self.execute(lambda: func(*args, **kwargs))

        return wrapper

    def _admit(self) -> tuple[Optional[int], bool]:
        """Decide whether a call may run.

        Returns the generation a trial call was admitted under (None while
        CLOSED) and whether the call took one of the trial slots.
        """
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return None, False

            if self._state == CircuitState.OPEN:
                elapsed = self._clock() - (self._last_failure_time or 0.0)
                if elapsed < self.config.reset_timeout:
                    raise CircuitOpenError(
                        self.name, retry_after=self.config.reset_timeout - elapsed
                    )
                logger.debug(f"Circuit breaker {self.name} admitting trial call")

            limit = self.config.half_open_max_calls
            if limit is None:
                return self._generation, False
            if self._trial_calls >= limit:
                raise CircuitOpenError(self.name)
            self._trial_calls += 1
            return self._generation, True

    def _record_success(self, trial: Optional[int]) -> None:
        transitions = []
        with self._lock:
            if self._state == CircuitState.CLOSED:
                self._failure_count = 0
            elif self._state == CircuitState.OPEN:
                # Stale trials from an earlier period prove nothing
                if trial == self._generation:
                    transitions.append(self._transition(CircuitState.HALF_OPEN))
                    self._half_open_successes = 1
            else:
                self._half_open_successes += 1
                if self._half_open_successes >= self.config.successes_to_close:
                    transitions.append(self._transition(CircuitState.CLOSED))
        self._notify(transitions)

    def _record_failure(self, trial: Optional[int]) -> None:
        transitions = []
        with self._lock:
            if self._state == CircuitState.CLOSED:
                self._failure_count += 1
                if self._failure_count >= self.config.failure_threshold:
                    self._last_failure_time = self._clock()
                    transitions.append(self._transition(CircuitState.OPEN))
            elif self._state == CircuitState.HALF_OPEN:
                self._failure_count += 1
                self._last_failure_time = self._clock()
                transitions.append(self._transition(CircuitState.OPEN))
            elif trial is not None:
                self._failure_count += 1
                self._last_failure_time = self._clock()
                self._generation += 1
                logger.warning(f"Trial call for {self.name} failed, circuit stays OPEN")
        self._notify(transitions)

    def _transition(self, new_state: CircuitState) -> tuple[CircuitState, CircuitState]:
        """Switch state. Must be called with the lock held."""
        old_state = self._state
        self._state = new_state
        self._generation += 1

        if new_state == CircuitState.OPEN:
            logger.warning(
                f"Circuit breaker {self.name} OPENED after {self._failure_count} failures"
            )
        elif new_state == CircuitState.HALF_OPEN:
            self._half_open_successes = 0
            logger.info(f"Circuit breaker {self.name} entering HALF_OPEN for recovery test")
        else:
            self._failure_count = 0
            self._half_open_successes = 0
            logger.info(f"Circuit breaker {self.name} CLOSED - dependency recovered")

        return old_state, new_state

    def _notify(self, transitions: list[tuple[CircuitState, CircuitState]]) -> None:
        for old_state, new_state in transitions:
            for listener in self._listeners:
                try:
                    listener(self.name, old_state, new_state)
                except Exception as e:
                    logger.error(f"State change listener failed for {self.name}: {e}")

    def reset(self) -> None:
        """Manually reset the circuit breaker to CLOSED."""
        with self._lock:
            old_state = self._state
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._half_open_successes = 0
            self._generation += 1
            self._last_failure_time = None
        logger.info(f"Circuit breaker {self.name} manually reset")
        if old_state != CircuitState.CLOSED:
            self._notify([(old_state, CircuitState.CLOSED)])

    def get_status(self) -> dict[str, Any]:
        """Get circuit breaker status.

        Returns:
            Status dictionary
        """
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "failure_count": self._failure_count,
                "half_open_successes": self._half_open_successes,
                "last_failure": self._last_failure_time,
                "failure_threshold": self.config.failure_threshold,
                "reset_timeout": self.config.reset_timeout,
            }


class CircuitBreakerRegistry:
    """One breaker per dependency, created on first use.

    Build one at application startup and pass it to the services that need it.

    Usage:
        registry = CircuitBreakerRegistry(default_config=settings.circuit_breaker_config())
        stripe_breaker = registry.get("stripe")
    """

    def __init__(
        self,
        default_config: Optional[CircuitBreakerConfig] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        on_state_change: Optional[StateChangeListener] = None,
    ):
        self.default_config = default_config or CircuitBreakerConfig()
        self._clock = clock
        self._on_state_change = on_state_change
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get(self, name: str, config: Optional[CircuitBreakerConfig] = None) -> CircuitBreaker:
        """Get the breaker for a dependency, creating it if needed.

        Args:
            name: Dependency name
            config: Config used only when the breaker is first created

        Returns:
            The dependency's breaker
        """
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(
                    name,
                    config or self.default_config,
                    clock=self._clock,
                    on_state_change=self._on_state_change,
                )
                self._breakers[name] = breaker
                logger.debug(f"Created circuit breaker for {name}")
            return breaker

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._breakers

    def names(self) -> list[str]:
        with self._lock:
            return list(self._breakers)

    def get_all_status(self) -> dict[str, dict[str, Any]]:
        """Status of every registered breaker."""
        with self._lock:
            breakers = list(self._breakers.values())
        return {breaker.name: breaker.get_status() for breaker in breakers}

    def reset_all(self) -> None:
        """Reset every registered breaker."""
        with self._lock:
            breakers = list(self._breakers.values())
        for breaker in breakers:
            breaker.reset()
