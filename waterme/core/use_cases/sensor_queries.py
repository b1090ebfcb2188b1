"""
Sensor data query use cases.

These use cases answer the read-only chat commands: reading history, latest
readings per sensor and the sensor availability report. They are pure
projections of Controller and Sensor fields.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import structlog

from waterme.core.domain.entities import Controller, Reading, Sensor
from waterme.core.domain.repositories import UserRepository
from waterme.core.domain.services import EvaluationEngine
from waterme.shared.contracts import ensure
from waterme.shared.exceptions import UserNotFoundError
from waterme.shared.types import SensorKind, TelegramUserID

logger = structlog.get_logger(__name__)


def parse_count(raw: Optional[str]) -> Optional[int]:
    """Parse the ``<number of readings>`` chat argument; None when unusable."""
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except (ValueError, AttributeError):
        return None


@ensure(
    lambda result, controller: len(result) <= sum(len(s.readings) for s in controller.sensors),
    "History returned more readings than the controller holds"
)
def history(controller: Controller, sensor_substr: Optional[str], count: Optional[int]) -> List[Reading]:
    """
    Most recent readings of every sensor whose type contains ``sensor_substr``.

    Sensors keep their registration order; each contributes its last ``count``
    readings newest first. A count larger than the log returns the whole log,
    a missing or non-positive count returns nothing.
    """
    if sensor_substr is None or count is None or count <= 0:
        return []

    requested: List[Reading] = []
    for sensor in controller.sensors_matching(sensor_substr):
        start = max(len(sensor.readings) - count, 0)
        requested.extend(reversed(sensor.readings[start:]))

    return requested


@dataclass
class ControllerHistory:
    """History result for one subscribed controller."""
    mac_address: str
    readings: List[Reading] = field(default_factory=list)


@dataclass
class ControllerSnapshot:
    """Latest reading of each selected sensor of a controller."""
    mac_address: str
    entries: List[Tuple[Sensor, Optional[Reading]]] = field(default_factory=list)


@dataclass
class ControllerStatus:
    """Availability flags of one controller."""
    mac_address: str
    availability: Dict[SensorKind, bool] = field(default_factory=dict)


@dataclass
class StatusReport:
    engine_version: str
    controllers: List[ControllerStatus] = field(default_factory=list)


class _SubscribedControllersQuery:
    """Shared lookup of the controllers a chat user follows."""

    def __init__(self, user_repo: UserRepository):
        self.user_repo = user_repo

    async def _controllers_for(self, user_id: TelegramUserID) -> List[Controller]:
        user = await self.user_repo.get_by_telegram_id(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return await self.user_repo.get_subscribed_controllers(user)


class HistoryQueryUseCase(_SubscribedControllersQuery):
    """Use case for the ``/history <sensor> <number of readings>`` command."""

    async def execute(
        self,
        user_id: TelegramUserID,
        sensor_substr: Optional[str],
        count: Optional[int]
    ) -> List[ControllerHistory]:
        """
        Run the history query over every controller the user follows.

        Args:
            user_id: Telegram user id of the requester
            sensor_substr: Substring of the sensor type to select
            count: Number of readings per sensor

        Returns:
            One entry per subscribed controller, possibly with no readings

        Raises:
            UserNotFoundError: If the user never started a conversation
        """
        logger.info(
            "Querying reading history",
            user_id=user_id,
            sensor=sensor_substr,
            count=count
        )

        controllers = await self._controllers_for(user_id)
        return [
            ControllerHistory(
                mac_address=controller.mac_address,
                readings=history(controller, sensor_substr, count)
            )
            for controller in controllers
        ]


class LatestReadingsUseCase(_SubscribedControllersQuery):
    """Use case for ``/latest`` and the per-kind latest reading commands."""

    async def execute(
        self,
        user_id: TelegramUserID,
        tags: Optional[Tuple[str, ...]] = None
    ) -> List[ControllerSnapshot]:
        """Latest reading per sensor, optionally only sensors matching any of ``tags``."""
        controllers = await self._controllers_for(user_id)

        snapshots = []
        for controller in controllers:
            sensors = controller.sensors
            if tags:
                sensors = [s for s in sensors if any(s.matches(tag) for tag in tags)]
            snapshots.append(ControllerSnapshot(
                mac_address=controller.mac_address,
                entries=[(sensor, sensor.latest) for sensor in sensors]
            ))

        return snapshots


class StatusReportUseCase(_SubscribedControllersQuery):
    """Use case for the ``/status`` availability report."""

    def __init__(self, user_repo: UserRepository, engine: EvaluationEngine):
        super().__init__(user_repo)
        self.engine = engine

    async def execute(self, user_id: TelegramUserID) -> StatusReport:
        controllers = await self._controllers_for(user_id)

        report = StatusReport(engine_version=self.engine.version())
        for controller in controllers:
            report.controllers.append(ControllerStatus(
                mac_address=controller.mac_address,
                availability={
                    kind: self.engine.sensor_available(controller.sensors, kind)
                    for kind in SensorKind
                }
            ))

        return report
