"""
Dependency Injection infrastructure.

This module wires the store, engine and messenger into the use cases.
"""

from .container import (
    DIContainer,
    ServiceProvider,
    DatabaseServiceProvider,
    MessagingServiceProvider,
    EngineServiceProvider,
    UseCaseServiceProvider,
    build_container
)

__all__ = [
    "DIContainer",
    "ServiceProvider",
    "DatabaseServiceProvider",
    "MessagingServiceProvider",
    "EngineServiceProvider",
    "UseCaseServiceProvider",
    "build_container"
]
