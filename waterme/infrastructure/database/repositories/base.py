"""
Base repository implementation with common functionality.

This module provides the shared loader options and model-to-entity mappers
used by the controller and user repositories. Every repository call opens its
own session, so every call is its own transaction.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import structlog

from waterme.core.domain.entities import (
    Controller,
    Reading,
    Sensor,
    TelegramIdentity,
    User,
    WateringThreshold,
)
from waterme.infrastructure.database.config import DatabaseManager
from waterme.infrastructure.database.models import (
    ControllerModel,
    SensorModel,
    SubscriptionModel,
    UserModel,
)
from waterme.shared.types import MacAddress, TelegramUserID

logger = structlog.get_logger(__name__)


def controller_load_options():
    """Eager loads for a complete Controller aggregate."""
    return (
        selectinload(ControllerModel.sensors).selectinload(SensorModel.readings),
        selectinload(ControllerModel.subscriptions).selectinload(SubscriptionModel.user),
    )


def user_load_options():
    """Eager loads for a User with its controller references."""
    return (
        selectinload(UserModel.subscriptions).selectinload(SubscriptionModel.controller),
    )


class BaseRepository:
    """
    Base repository with the mappers shared by all record types.

    Repositories hold the database manager rather than a session; sessions
    are short-lived and scoped to a single repository call.
    """

    def __init__(self, db: DatabaseManager):
        """
        Initialize base repository.

        Args:
            db: Initialized database manager
        """
        self.db = db

    @staticmethod
    def _controller_to_entity(model: ControllerModel) -> Controller:
        """Convert a controller model with loaded relations to a domain entity."""
        sensors = [
            Sensor(
                type=sensor.type,
                readings=[Reading(time=r.time, value=r.value) for r in sensor.readings],
                watering_threshold=WateringThreshold(
                    max=sensor.threshold_max,
                    min=sensor.threshold_min
                )
            )
            for sensor in model.sensors
        ]
        return Controller(
            mac_address=MacAddress(model.mac_address),
            location=model.location,
            sensors=sensors,
            users=[TelegramUserID(s.user.telegram_user_id) for s in model.subscriptions]
        )

    @staticmethod
    def _user_to_entity(model: UserModel) -> User:
        """Convert a user model with loaded subscriptions to a domain entity."""
        return User(
            telegram=TelegramIdentity(
                user_id=TelegramUserID(model.telegram_user_id),
                first_name=model.first_name,
                last_name=model.last_name
            ),
            email=model.email,
            notifications=model.notifications,
            microcontrollers=[MacAddress(s.controller.mac_address) for s in model.subscriptions]
        )

    @staticmethod
    async def _load_controller(session: AsyncSession, mac_address: str):
        stmt = (
            select(ControllerModel)
            .where(ControllerModel.mac_address == mac_address)
            .options(*controller_load_options())
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def _load_user(session: AsyncSession, user_id: int):
        stmt = (
            select(UserModel)
            .where(UserModel.telegram_user_id == user_id)
            .options(*user_load_options())
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def _link(session: AsyncSession, user: UserModel, controller: ControllerModel) -> bool:
        """Insert the subscription row for a pair unless it exists."""
        stmt = select(SubscriptionModel.id).where(
            SubscriptionModel.user_id == user.id,
            SubscriptionModel.controller_id == controller.id
        )
        result = await session.execute(stmt)
        if result.scalar_one_or_none() is not None:
            return False

        session.add(SubscriptionModel(user_id=user.id, controller_id=controller.id))
        return True
