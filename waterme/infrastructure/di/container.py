"""
Dependency Injection Container.

Collaborators (store, engine, messenger) are registered once at startup and
injected into the use cases by constructor annotation. The notification and
subscription use cases are singletons because they carry per-process state
(the in-flight set and the per-user locks).
"""

from typing import TypeVar, Type, Callable, Dict, Any, List, Optional
from abc import ABC, abstractmethod
import inspect

import structlog

from waterme.shared.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)

T = TypeVar('T')


class DIContainer:
    """
    Dependency Injection Container with lifecycle management.

    Supports singletons (created on first resolve), transients, factories
    and pre-built instances.
    """

    def __init__(self):
        self._singletons: Dict[Type, Any] = {}
        self._transients: Dict[Type, Callable] = {}
        self._factories: Dict[Type, Callable] = {}
        self._interfaces: Dict[Type, Type] = {}

    def register_singleton(self, interface: Type[T], implementation: Type[T]) -> None:
        logger.debug("Registering singleton", interface=interface.__name__, implementation=implementation.__name__)
        self._interfaces[interface] = implementation

    def register_transient(self, interface: Type[T], implementation: Type[T]) -> None:
        logger.debug("Registering transient", interface=interface.__name__, implementation=implementation.__name__)
        self._transients[interface] = implementation

    def register_factory(self, interface: Type[T], factory: Callable[..., T]) -> None:
        logger.debug("Registering factory", interface=interface.__name__)
        self._factories[interface] = factory

    def register_instance(self, interface: Type[T], instance: T) -> None:
        logger.debug("Registering instance", interface=interface.__name__)
        self._singletons[interface] = instance

    def is_registered(self, interface: Type) -> bool:
        return any(
            interface in registry
            for registry in (self._singletons, self._factories, self._interfaces, self._transients)
        )

    async def resolve(self, interface: Type[T]) -> T:
        """
        Resolve a dependency by interface type.

        Raises:
            ConfigurationError: If the dependency is not registered
        """
        if interface in self._singletons:
            return self._singletons[interface]

        if interface in self._factories:
            return await self._create_with_dependencies(self._factories[interface])

        if interface in self._interfaces:
            instance = await self._create_with_dependencies(self._interfaces[interface])
            self._singletons[interface] = instance
            return instance

        if interface in self._transients:
            return await self._create_with_dependencies(self._transients[interface])

        raise ConfigurationError(f"Dependency {interface.__name__} is not registered")

    async def _create_with_dependencies(self, cls_or_func: Callable) -> Any:
        """Call ``cls_or_func`` with every annotated parameter resolved."""
        sig = inspect.signature(cls_or_func)

        kwargs = {}
        for param_name, param in sig.parameters.items():
            if param.annotation is inspect.Parameter.empty:
                continue
            if not self.is_registered(param.annotation):
                if param.default is inspect.Parameter.empty:
                    raise ConfigurationError(
                        f"Cannot resolve {param_name} for {getattr(cls_or_func, '__name__', cls_or_func)}"
                    )
                continue
            kwargs[param_name] = await self.resolve(param.annotation)

        if inspect.iscoroutinefunction(cls_or_func):
            return await cls_or_func(**kwargs)
        return cls_or_func(**kwargs)

    async def cleanup(self) -> None:
        """Cleanup all singletons that support cleanup, newest first."""
        logger.info("Cleaning up DI container")

        for instance in reversed(list(self._singletons.values())):
            cleanup = getattr(instance, 'cleanup', None)
            if not callable(cleanup):
                continue
            try:
                if inspect.iscoroutinefunction(cleanup):
                    await cleanup()
                else:
                    cleanup()
            except Exception as e:
                logger.error("Error during cleanup", instance=type(instance).__name__, error=str(e))

        self._singletons.clear()


class ServiceProvider(ABC):
    """Abstract base class for service providers."""

    @abstractmethod
    async def configure(self, container: DIContainer) -> None:
        """Configure services in the container."""
        pass


class DatabaseServiceProvider(ServiceProvider):
    """Registers the database manager and the SQLAlchemy repositories."""

    def __init__(self, db_manager):
        self.db_manager = db_manager

    async def configure(self, container: DIContainer) -> None:
        from waterme.core.domain.repositories import ControllerRepository, UserRepository
        from waterme.infrastructure.database.config import DatabaseManager
        from waterme.infrastructure.database.repositories import (
            SQLAlchemyControllerRepository,
            SQLAlchemyUserRepository
        )

        container.register_instance(DatabaseManager, self.db_manager)
        container.register_singleton(ControllerRepository, SQLAlchemyControllerRepository)
        container.register_singleton(UserRepository, SQLAlchemyUserRepository)

        logger.info("Database services configured")


class MessagingServiceProvider(ServiceProvider):
    """Registers the Telegram messenger, initialized."""

    def __init__(self, token: str):
        self.token = token

    async def configure(self, container: DIContainer) -> None:
        from waterme.core.domain.services import Messenger
        from waterme.infrastructure.messaging.telegram import TelegramMessenger

        messenger = TelegramMessenger(self.token)
        await messenger.initialize()
        container.register_instance(Messenger, messenger)

        logger.info("Messaging services configured")


class EngineServiceProvider(ServiceProvider):
    """Registers the evaluation engine named by its import path."""

    def __init__(self, engine_path: str):
        self.engine_path = engine_path

    async def configure(self, container: DIContainer) -> None:
        from waterme.core.domain.services import EvaluationEngine
        from waterme.infrastructure.engine.loader import load_engine

        container.register_instance(EvaluationEngine, load_engine(self.engine_path))

        logger.info("Engine services configured")


class UseCaseServiceProvider(ServiceProvider):
    """Registers every use case as a singleton."""

    async def configure(self, container: DIContainer) -> None:
        from waterme.core.use_cases import (
            EvaluateAndNotifyUseCase,
            HistoryQueryUseCase,
            LatestReadingsUseCase,
            SetNotificationsUseCase,
            StartConversationUseCase,
            StatusReportUseCase,
            SubscribeUseCase
        )

        for use_case in (
            StartConversationUseCase,
            SubscribeUseCase,
            SetNotificationsUseCase,
            EvaluateAndNotifyUseCase,
            HistoryQueryUseCase,
            LatestReadingsUseCase,
            StatusReportUseCase,
        ):
            container.register_singleton(use_case, use_case)

        logger.info("Use case services configured")


async def build_container(providers: List[ServiceProvider], container: Optional[DIContainer] = None) -> DIContainer:
    """Create a container and run every provider against it, in order."""
    container = container or DIContainer()
    for provider in providers:
        await provider.configure(container)

    logger.info("DI container initialized", providers=[type(p).__name__ for p in providers])
    return container
