"""
Resilience patterns for calls to external services.

This module provides the retry and circuit breaker wrapper used for Telegram
delivery.
"""

from .retry import (
    RetryStrategy,
    RetryConfig,
    CircuitBreakerState,
    CircuitBreakerConfig,
    CircuitBreaker,
    ResilientClient,
    CircuitBreakerRegistry,
    circuit_breaker_registry
)

__all__ = [
    "RetryStrategy",
    "RetryConfig",
    "CircuitBreakerState",
    "CircuitBreakerConfig",
    "CircuitBreaker",
    "ResilientClient",
    "CircuitBreakerRegistry",
    "circuit_breaker_registry"
]
