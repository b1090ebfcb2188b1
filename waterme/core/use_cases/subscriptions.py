"""
User onboarding and subscription use cases.

A subscription is a reference on both sides: the user lists the controller's
MAC address and the controller lists the user's id. The two sides are persisted
by two separate writes; a failure between them leaves a one-sided link which
is reported to the caller and not repaired here.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Tuple

import structlog

from waterme.core.domain.entities import Controller, TelegramIdentity, User, create_user
from waterme.core.domain.repositories import ControllerRepository, UserRepository
from waterme.shared.contracts import require, non_empty_string
from waterme.shared.exceptions import (
    AlreadySubscribedError,
    ControllerNotFoundError,
    DuplicateResourceError,
    UserNotFoundError,
)
from waterme.shared.types import MacAddress, TelegramUserID

logger = structlog.get_logger(__name__)


class StartConversationUseCase:
    """Use case behind ``/start``: create the user on first contact."""

    def __init__(self, user_repo: UserRepository):
        self.user_repo = user_repo

    async def execute(self, identity: TelegramIdentity) -> Tuple[User, bool]:
        """
        Find or lazily create the user for a chat identity.

        Names are reconciled with the latest identity so that lookups by
        ``user_id`` never go stale.

        Returns:
            The user and whether it was created by this call
        """
        user = await self.user_repo.get_by_telegram_id(identity.user_id)

        if user is None:
            try:
                user = await self.user_repo.create(create_user(identity))
            except DuplicateResourceError:
                # Lost a race with a concurrent /start for the same user
                user = await self.user_repo.get_by_telegram_id(identity.user_id)
                if user is None:
                    raise
                return user, False
            logger.info("User created", user_id=identity.user_id)
            return user, True

        if user.reconcile_identity(identity):
            user = await self.user_repo.save(user)
            logger.info("User identity reconciled", user_id=identity.user_id)

        return user, False


class SubscribeUseCase:
    """Use case linking a chat user to a controller.

    Calls for the same user are serialised inside this process, so two
    concurrent identical requests yield one success and one
    AlreadySubscribedError. Across processes the last write wins.
    """

    def __init__(self, user_repo: UserRepository, controller_repo: ControllerRepository):
        self.user_repo = user_repo
        self.controller_repo = controller_repo
        self._locks: Dict[int, asyncio.Lock] = {}
        self._lock_users: Dict[int, int] = {}

    @asynccontextmanager
    async def _user_lock(self, user_id: TelegramUserID) -> AsyncIterator[None]:
        """Hold the user's lock; it is dropped once no call holds or awaits it."""
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[user_id] -= 1
            if not self._lock_users[user_id]:
                del self._lock_users[user_id]
                del self._locks[user_id]

    @require(lambda mac_address: non_empty_string(mac_address), "MAC address cannot be empty")
    async def execute(self, user_id: TelegramUserID, mac_address: MacAddress) -> Controller:
        """
        Subscribe a user to a controller.

        Args:
            user_id: Telegram user id of the subscriber
            mac_address: MAC address of the controller

        Returns:
            The controller as persisted after the second write

        Raises:
            ControllerNotFoundError: If no controller has this MAC address
            UserNotFoundError: If the user never started a conversation
            AlreadySubscribedError: If the user already follows the controller
            StoreUnavailableError: If either write fails
        """
        mac_address = MacAddress(mac_address.strip())
        logger.info("Subscribing user", user_id=user_id, mac_address=mac_address)

        async with self._user_lock(user_id):
            controller = await self.controller_repo.get_by_mac(mac_address)
            if controller is None:
                raise ControllerNotFoundError(mac_address)

            user = await self.user_repo.get_by_telegram_id(user_id)
            if user is None:
                raise UserNotFoundError(user_id)

            subscribed = await self.user_repo.get_subscribed_controllers(user)
            if any(c.mac_address == controller.mac_address for c in subscribed):
                logger.info(
                    "Subscription rejected, already subscribed",
                    user_id=user_id,
                    mac_address=mac_address
                )
                raise AlreadySubscribedError(user_id, mac_address)

            # First write: user side
            user.add_controller(controller.mac_address)
            await self.user_repo.save(user)

            # Second write: controller side, not atomic with the first
            controller.add_user(user.user_id)
            try:
                controller = await self.controller_repo.save(controller)
            except Exception:
                logger.error(
                    "Controller side of subscription not persisted, link is one-sided",
                    user_id=user_id,
                    mac_address=mac_address
                )
                raise

        logger.info("User subscribed", user_id=user_id, mac_address=mac_address)
        return controller


class SetNotificationsUseCase:
    """Use case behind ``/notifications on|off``."""

    def __init__(self, user_repo: UserRepository):
        self.user_repo = user_repo

    async def execute(self, user_id: TelegramUserID, enabled: bool) -> User:
        user = await self.user_repo.get_by_telegram_id(user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        if user.notifications != enabled:
            user.notifications = enabled
            user = await self.user_repo.save(user)

        logger.info("Notification preference set", user_id=user_id, enabled=enabled)
        return user
