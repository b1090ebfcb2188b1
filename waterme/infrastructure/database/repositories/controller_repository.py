"""
Controller repository implementation using SQLAlchemy.

This module provides the concrete implementation of the ControllerRepository
interface. Controllers are provisioned out of band; this repository only
reads them and persists their user references.
"""

from typing import List, Optional

from sqlalchemy import select
import structlog

from waterme.core.domain.entities import Controller, User
from waterme.core.domain.repositories import ControllerRepository
from waterme.infrastructure.database.models import (
    ControllerModel,
    SubscriptionModel,
    UserModel,
)
from waterme.infrastructure.database.repositories.base import (
    BaseRepository,
    controller_load_options,
    user_load_options,
)
from waterme.shared.exceptions import ControllerNotFoundError, UserNotFoundError
from waterme.shared.types import MacAddress

logger = structlog.get_logger(__name__)


class SQLAlchemyControllerRepository(BaseRepository, ControllerRepository):
    """SQLAlchemy implementation of ControllerRepository."""

    async def get_by_mac(self, mac_address: MacAddress) -> Optional[Controller]:
        """Get controller by MAC address."""
        logger.debug("Fetching controller by MAC address", mac_address=mac_address)

        async with self.db.get_session() as session:
            model = await self._load_controller(session, mac_address)
            if model is None:
                logger.info("Controller not found", mac_address=mac_address)
                return None
            return self._controller_to_entity(model)

    async def get_all(self) -> List[Controller]:
        """Get every controller, in registration order."""
        async with self.db.get_session() as session:
            stmt = (
                select(ControllerModel)
                .options(*controller_load_options())
                .order_by(ControllerModel.id)
            )
            result = await session.execute(stmt)
            models = result.scalars().all()

            logger.debug("Fetched controllers", count=len(models))
            return [self._controller_to_entity(model) for model in models]

    async def save(self, controller: Controller) -> Controller:
        """
        Persist the controller's user references.

        References already stored are left alone; a reference to a user
        without a record raises UserNotFoundError and nothing is written.
        """
        async with self.db.get_session() as session:
            model = await self._load_controller(session, controller.mac_address)
            if model is None:
                raise ControllerNotFoundError(controller.mac_address)

            linked = {s.user.telegram_user_id for s in model.subscriptions}
            added = 0
            for user_id in controller.users:
                if user_id in linked:
                    continue
                user_model = await self._load_user(session, user_id)
                if user_model is None:
                    raise UserNotFoundError(user_id)
                if await self._link(session, user_model, model):
                    added += 1
                linked.add(user_id)

            await session.flush()
            model = await self._load_controller(session, controller.mac_address)

            logger.info(
                "Controller saved",
                mac_address=controller.mac_address,
                new_users=added
            )
            return self._controller_to_entity(model)

    async def get_subscribers(self, controller: Controller) -> List[User]:
        """Get the users referenced by a controller, in subscription order."""
        async with self.db.get_session() as session:
            stmt = (
                select(UserModel)
                .join(SubscriptionModel, SubscriptionModel.user_id == UserModel.id)
                .join(ControllerModel, SubscriptionModel.controller_id == ControllerModel.id)
                .where(ControllerModel.mac_address == controller.mac_address)
                .options(*user_load_options())
                .order_by(SubscriptionModel.id)
            )
            result = await session.execute(stmt)
            models = result.scalars().all()

            return [self._user_to_entity(model) for model in models]
