"""
User repository implementation using SQLAlchemy.

This module provides the concrete implementation of the UserRepository
interface. Users are keyed by Telegram user id; the user side of a
subscription is a row in the ``subscriptions`` table.
"""

from typing import List, Optional, Set

from sqlalchemy import select
import structlog

from waterme.core.domain.entities import Controller, User
from waterme.core.domain.repositories import UserRepository
from waterme.infrastructure.database.models import (
    ControllerModel,
    SubscriptionModel,
    UserModel,
)
from waterme.infrastructure.database.repositories.base import (
    BaseRepository,
    controller_load_options,
)
from waterme.shared.exceptions import ControllerNotFoundError, UserNotFoundError
from waterme.shared.types import TelegramUserID

logger = structlog.get_logger(__name__)


class SQLAlchemyUserRepository(BaseRepository, UserRepository):
    """SQLAlchemy implementation of UserRepository."""

    async def create(self, user: User) -> User:
        """
        Create a new user.

        Raises:
            DuplicateResourceError: If a user with this Telegram id exists
        """
        logger.info("Creating user", user_id=user.user_id)

        async with self.db.get_session() as session:
            model = UserModel(
                telegram_user_id=user.user_id,
                first_name=user.telegram.first_name,
                last_name=user.telegram.last_name,
                email=user.email,
                notifications=user.notifications
            )
            session.add(model)
            await session.flush()

            await self._link_controllers(session, model, user, linked=set())
            await session.flush()

            model = await self._load_user(session, user.user_id)
            return self._user_to_entity(model)

    async def get_by_telegram_id(self, user_id: TelegramUserID) -> Optional[User]:
        """Get user by Telegram user id."""
        async with self.db.get_session() as session:
            model = await self._load_user(session, user_id)
            if model is None:
                return None
            return self._user_to_entity(model)

    async def save(self, user: User) -> User:
        """Persist identity, preferences and any new controller references."""
        async with self.db.get_session() as session:
            model = await self._load_user(session, user.user_id)
            if model is None:
                raise UserNotFoundError(user.user_id)

            model.first_name = user.telegram.first_name
            model.last_name = user.telegram.last_name
            model.email = user.email
            model.notifications = user.notifications

            linked = {s.controller.mac_address for s in model.subscriptions}
            added = await self._link_controllers(session, model, user, linked)
            await session.flush()

            model = await self._load_user(session, user.user_id)

            logger.info(
                "User saved",
                user_id=user.user_id,
                notifications=user.notifications,
                new_controllers=added
            )
            return self._user_to_entity(model)

    async def get_subscribed_controllers(self, user: User) -> List[Controller]:
        """Get the controllers a user references, in subscription order."""
        async with self.db.get_session() as session:
            stmt = (
                select(ControllerModel)
                .join(SubscriptionModel, SubscriptionModel.controller_id == ControllerModel.id)
                .join(UserModel, SubscriptionModel.user_id == UserModel.id)
                .where(UserModel.telegram_user_id == user.user_id)
                .options(*controller_load_options())
                .order_by(SubscriptionModel.id)
            )
            result = await session.execute(stmt)
            models = result.scalars().all()

            return [self._controller_to_entity(model) for model in models]

    async def _link_controllers(self, session, model: UserModel, user: User, linked: Set[str]) -> int:
        added = 0
        for mac_address in user.microcontrollers:
            if mac_address in linked:
                continue
            controller_model = await self._load_controller(session, mac_address)
            if controller_model is None:
                raise ControllerNotFoundError(mac_address)
            if await self._link(session, model, controller_model):
                added += 1
            linked.add(mac_address)
        return added
