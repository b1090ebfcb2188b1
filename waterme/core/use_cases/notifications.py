"""
Watering evaluation and notification use case.

One evaluation pass asks the engine for a verdict per controller and reminds
every subscribed user with notifications enabled. Controllers are evaluated
independently: a failure on one is logged and recorded, never propagated to
its siblings.
"""

import asyncio
from dataclasses import dataclass, field
from typing import List, Set
from uuid import uuid4

import structlog

from waterme.core.domain.entities import Controller, User
from waterme.core.domain.repositories import ControllerRepository
from waterme.core.domain.services import EvaluationEngine, Messenger
from waterme.shared.exceptions import (
    PartialFanoutFailure,
    StoreUnavailableError,
    WaterMeError,
)

logger = structlog.get_logger(__name__)

WATERING_REMINDER = "Your plants need water! \U0001F4A7\nController: {mac_address}"


def format_reminder(mac_address: str) -> str:
    return WATERING_REMINDER.format(mac_address=mac_address)


@dataclass
class EvaluationSummary:
    """Outcome of one evaluation pass."""
    pass_id: str
    controllers_total: int = 0
    evaluated: List[str] = field(default_factory=list)
    watering_needed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    notifications_sent: int = 0
    delivery_failures: int = 0
    store_available: bool = True


class EvaluateAndNotifyUseCase:
    """Use case running one watering evaluation pass.

    The in-flight set is per process and keyed by MAC address: a controller
    whose previous fan-out has not finished is skipped by overlapping passes.
    """

    def __init__(
        self,
        controller_repo: ControllerRepository,
        engine: EvaluationEngine,
        messenger: Messenger
    ):
        self.controller_repo = controller_repo
        self.engine = engine
        self.messenger = messenger
        self._in_flight: Set[str] = set()

    @property
    def in_flight(self) -> Set[str]:
        return set(self._in_flight)

    async def execute(self) -> EvaluationSummary:
        """
        Evaluate every controller and fan out watering reminders.

        Returns:
            Summary of the pass; a store outage while listing controllers
            yields an empty summary with ``store_available`` False
        """
        summary = EvaluationSummary(pass_id=uuid4().hex[:12])
        log = logger.bind(pass_id=summary.pass_id)

        log.info("Evaluation pass started")

        try:
            controllers = await self.controller_repo.get_all()
        except StoreUnavailableError as e:
            log.error("Evaluation pass aborted, controllers unavailable", error=str(e))
            summary.store_available = False
            return summary

        summary.controllers_total = len(controllers)

        tasks = []
        for controller in controllers:
            mac_address = controller.mac_address
            # Claim synchronously so overlapping passes cannot both pass the check
            if mac_address in self._in_flight:
                log.warning("Controller still being evaluated, skipping", mac_address=mac_address)
                summary.skipped.append(mac_address)
                continue
            self._in_flight.add(mac_address)
            tasks.append(self._run_isolated(controller, summary, log))

        await asyncio.gather(*tasks)

        log.info(
            "Evaluation pass finished",
            controllers=summary.controllers_total,
            evaluated=len(summary.evaluated),
            skipped=len(summary.skipped),
            failed=len(summary.failed),
            notifications_sent=summary.notifications_sent
        )
        return summary

    async def _run_isolated(self, controller: Controller, summary: EvaluationSummary, log) -> None:
        mac_address = controller.mac_address
        try:
            await self._evaluate_controller(controller, summary, log)
            summary.evaluated.append(mac_address)
        except PartialFanoutFailure as e:
            log.error("Controller evaluation failed", mac_address=mac_address, reason=e.reason)
            summary.failed.append(mac_address)
        except Exception as e:
            # Siblings keep running whatever this controller raised
            log.exception("Controller evaluation crashed", mac_address=mac_address, error=str(e))
            summary.failed.append(mac_address)
        finally:
            self._in_flight.discard(mac_address)

    async def _evaluate_controller(self, controller: Controller, summary: EvaluationSummary, log) -> None:
        mac_address = controller.mac_address

        try:
            subscribers = await self.controller_repo.get_subscribers(controller)
            should_water = await self.engine.verdict(controller.sensors, controller.location)
        except WaterMeError as e:
            raise PartialFanoutFailure(mac_address, e.message)
        except Exception as e:
            # Engine errors of any type stay with this controller
            raise PartialFanoutFailure(mac_address, f"{type(e).__name__}: {e}")

        log.info(
            "Controller evaluated",
            mac_address=mac_address,
            verdict=should_water,
            subscribers=len(subscribers)
        )

        if not should_water:
            return

        summary.watering_needed.append(mac_address)
        for user in self._recipients(subscribers):
            try:
                await self.messenger.send_message(user.user_id, format_reminder(mac_address))
                summary.notifications_sent += 1
            except WaterMeError as e:
                # Also covers an open circuit breaker and exhausted timeouts
                summary.delivery_failures += 1
                log.warning(
                    "Watering reminder not delivered",
                    mac_address=mac_address,
                    user_id=user.user_id,
                    error=e.message
                )

    @staticmethod
    def _recipients(subscribers: List[User]) -> List[User]:
        """Distinct subscribers, by user id, that want notifications."""
        seen: Set[int] = set()
        recipients = []
        for user in subscribers:
            if user.user_id in seen or not user.notifications:
                continue
            seen.add(user.user_id)
            recipients.append(user)
        return recipients
