"""
FastAPI dependencies.

The DI container and the application config are built in the lifespan and
kept on ``app.state``; routes resolve collaborators through them.
"""

from typing import Callable, Type, TypeVar

from fastapi import Depends, Request

from waterme.infrastructure.config import AppConfig
from waterme.infrastructure.di import DIContainer
from waterme.shared.exceptions import ConfigurationError

T = TypeVar("T")


def get_container(request: Request) -> DIContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise ConfigurationError("Application container is not initialized")
    return container


def get_app_config(request: Request) -> AppConfig:
    config = getattr(request.app.state, "config", None)
    if config is None:
        raise ConfigurationError("Application config is not initialized")
    return config


def provide(interface: Type[T]) -> Callable:
    """Dependency resolving ``interface`` from the container."""

    async def dependency(container: DIContainer = Depends(get_container)) -> T:
        return await container.resolve(interface)

    dependency.__name__ = f"provide_{interface.__name__}"
    return dependency
