"""
Retry and circuit breaker patterns for external dependencies.

Delivery to the chat service goes through a ResilientClient: every attempt
runs through an optional circuit breaker and an optional per-attempt timeout,
and retryable failures are retried with backoff.
"""

import asyncio
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog

from waterme.shared.exceptions import (
    CircuitBreakerOpenError,
    CommunicationError,
    TimeoutError,
    is_retryable_error,
)

logger = structlog.get_logger(__name__)


class RetryStrategy(Enum):
    """Available retry strategies."""
    FIXED_DELAY = "fixed_delay"
    EXPONENTIAL_BACKOFF = "exponential_backoff"


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL_BACKOFF
    backoff_multiplier: float = 2.0
    jitter: bool = True
    timeout_seconds: Optional[float] = None

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay after the given (1-based) attempt."""
        if self.strategy == RetryStrategy.EXPONENTIAL_BACKOFF:
            delay = self.base_delay * (self.backoff_multiplier ** (attempt - 1))
        else:
            delay = self.base_delay

        delay = min(delay, self.max_delay)

        if self.jitter:
            jitter_range = delay * 0.1
            delay += random.uniform(-jitter_range, jitter_range)

        return max(0.0, delay)


class CircuitBreakerState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""
    failure_threshold: int = 5
    success_threshold: int = 2
    timeout_seconds: float = 60.0


class CircuitBreaker:
    """Circuit breaker that stops calling a service after repeated failures."""

    def __init__(self, name: str, config: CircuitBreakerConfig):
        self.name = name
        self.config = config
        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_at: Optional[float] = None
        self._lock = asyncio.Lock()

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Execute a coroutine function through the breaker.

        Raises:
            CircuitBreakerOpenError: If the breaker is open and not yet due a probe
        """
        async with self._lock:
            if self.state == CircuitBreakerState.OPEN:
                if self._should_attempt_reset():
                    self.state = CircuitBreakerState.HALF_OPEN
                    self.success_count = 0
                    logger.info("Circuit breaker half-open", name=self.name)
                else:
                    raise CircuitBreakerOpenError(self.name)

        try:
            result = await func(*args, **kwargs)
        except CommunicationError:
            await self._record_failure()
            raise

        await self._record_success()
        return result

    def _should_attempt_reset(self) -> bool:
        if self.last_failure_at is None:
            return True
        return time.monotonic() - self.last_failure_at >= self.config.timeout_seconds

    async def _record_success(self) -> None:
        async with self._lock:
            if self.state == CircuitBreakerState.HALF_OPEN:
                self.success_count += 1
                if self.success_count >= self.config.success_threshold:
                    self.state = CircuitBreakerState.CLOSED
                    self.failure_count = 0
                    logger.info("Circuit breaker closed", name=self.name)
            elif self.state == CircuitBreakerState.CLOSED:
                self.failure_count = 0

    async def _record_failure(self) -> None:
        async with self._lock:
            self.failure_count += 1
            self.last_failure_at = time.monotonic()

            if self.state == CircuitBreakerState.HALF_OPEN or (
                self.state == CircuitBreakerState.CLOSED
                and self.failure_count >= self.config.failure_threshold
            ):
                self.state = CircuitBreakerState.OPEN
                logger.warning(
                    "Circuit breaker opened",
                    name=self.name,
                    failure_count=self.failure_count
                )

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
        }


class ResilientClient:
    """Wrapper adding retry, timeout and circuit breaker to async calls."""

    def __init__(
        self,
        name: str,
        retry_config: Optional[RetryConfig] = None,
        circuit_breaker_config: Optional[CircuitBreakerConfig] = None
    ):
        self.name = name
        self.retry_config = retry_config or RetryConfig()
        self.circuit_breaker: Optional[CircuitBreaker] = None

        if circuit_breaker_config:
            self.circuit_breaker = CircuitBreaker(name, circuit_breaker_config)
            circuit_breaker_registry.register(self.circuit_breaker)

    async def execute(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Execute a coroutine function with retries.

        Non-retryable exceptions propagate immediately; once attempts are
        exhausted the last exception is raised.
        """
        last_exception: Optional[Exception] = None

        for attempt in range(1, self.retry_config.max_attempts + 1):
            try:
                if self.retry_config.timeout_seconds:
                    return await asyncio.wait_for(
                        self._call(func, *args, **kwargs),
                        timeout=self.retry_config.timeout_seconds
                    )
                return await self._call(func, *args, **kwargs)

            except asyncio.TimeoutError:
                last_exception = TimeoutError(
                    operation=f"{self.name}.{func.__name__}",
                    timeout_seconds=self.retry_config.timeout_seconds
                )
                logger.warning(
                    "Call timed out",
                    client=self.name,
                    attempt=attempt,
                    timeout=self.retry_config.timeout_seconds
                )

            except CircuitBreakerOpenError:
                raise

            except Exception as e:
                if not is_retryable_error(e):
                    raise

                last_exception = e
                logger.warning(
                    "Retryable exception occurred",
                    client=self.name,
                    attempt=attempt,
                    exception=type(e).__name__,
                    error=str(e)
                )

            if attempt < self.retry_config.max_attempts:
                await asyncio.sleep(self.retry_config.calculate_delay(attempt))

        logger.error(
            "All retry attempts exhausted",
            client=self.name,
            max_attempts=self.retry_config.max_attempts,
            last_exception=str(last_exception)
        )

        if last_exception:
            raise last_exception
        raise CommunicationError(f"All retry attempts failed for {self.name}", service=self.name)

    async def _call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        if self.circuit_breaker:
            return await self.circuit_breaker.call(func, *args, **kwargs)
        return await func(*args, **kwargs)


class CircuitBreakerRegistry:
    """Registry for monitoring all circuit breakers in the application."""

    def __init__(self):
        self._breakers: Dict[str, CircuitBreaker] = {}

    def register(self, breaker: CircuitBreaker) -> None:
        self._breakers[breaker.name] = breaker

    def get_breaker(self, name: str) -> Optional[CircuitBreaker]:
        return self._breakers.get(name)


# Global registry instance
circuit_breaker_registry = CircuitBreakerRegistry()
