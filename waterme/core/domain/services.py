"""
Collaborator interfaces consumed by the use cases.

The evaluation engine owns the watering decision; the messenger owns chat
delivery. Both are injected, never imported by the core.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from waterme.core.domain.entities import Sensor
from waterme.shared.types import SensorKind, tags_for


class EvaluationEngine(ABC):
    """Decides whether a controller's plants need watering."""

    @abstractmethod
    async def verdict(self, sensors: Sequence[Sensor], location: Any) -> bool:
        """Return True when the plants behind these sensors should be watered now."""
        pass

    @abstractmethod
    def version(self) -> str:
        """Engine version string shown in status reports."""
        pass

    def sensor_available(self, sensors: Sequence[Sensor], kind: SensorKind) -> bool:
        """Whether data of the given kind is available for a verdict.

        On-board kinds are available when a sensor with a matching type tag has
        at least one reading. Engines that consult off-board sources (weather
        services) override this for ``SensorKind.EXTERNAL_WEATHER``.
        """
        tags = tags_for(kind)
        return any(
            sensor.readings and any(sensor.matches(tag) for tag in tags)
            for sensor in sensors
        )


class Messenger(ABC):
    """Delivers text messages to a chat identity."""

    @abstractmethod
    async def send_message(self, chat_id: int, text: str, reply_to: Optional[int] = None) -> None:
        """Deliver ``text`` to ``chat_id``; raises CommunicationError on failure."""
        pass
