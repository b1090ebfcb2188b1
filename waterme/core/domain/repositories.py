"""
Repository interfaces for WaterMe domain entities.

These abstract interfaces define the contracts for data access,
enabling easy testing with in-memory repositories and different storage implementations.
Implementations raise StoreUnavailableError when the store cannot be reached.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from waterme.shared.types import MacAddress, TelegramUserID
from waterme.core.domain.entities import Controller, User


class ControllerRepository(ABC):
    """Repository interface for Controller records."""

    @abstractmethod
    async def get_by_mac(self, mac_address: MacAddress) -> Optional[Controller]:
        """Retrieve a controller by its MAC address."""
        pass

    @abstractmethod
    async def get_all(self) -> List[Controller]:
        """Retrieve every controller in the store's natural order."""
        pass

    @abstractmethod
    async def save(self, controller: Controller) -> Controller:
        """Persist a controller's user references."""
        pass

    @abstractmethod
    async def get_subscribers(self, controller: Controller) -> List[User]:
        """Resolve the controller's user references into User records."""
        pass


class UserRepository(ABC):
    """Repository interface for User records."""

    @abstractmethod
    async def create(self, user: User) -> User:
        """Create a new user record."""
        pass

    @abstractmethod
    async def get_by_telegram_id(self, user_id: TelegramUserID) -> Optional[User]:
        """Retrieve a user by Telegram user id."""
        pass

    @abstractmethod
    async def save(self, user: User) -> User:
        """Persist a user's identity, preferences and controller references."""
        pass

    @abstractmethod
    async def get_subscribed_controllers(self, user: User) -> List[Controller]:
        """Resolve the user's controller references into Controller records."""
        pass
