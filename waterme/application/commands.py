"""
Chat command router.

Turns the text of an incoming Telegram message into a use case call and sends
the reply to the sender (``message.from.id``). Expected user errors become
fixed apology texts; any other failure becomes ``Something went wrong.``
and an undeliverable reply is logged and dropped.
"""

from typing import Awaitable, Callable, Dict, List, Optional, Tuple

import structlog

from waterme.application.models import TelegramMessage, TelegramUpdate
from waterme.core.domain.entities import TelegramIdentity
from waterme.core.domain.services import Messenger
from waterme.core.use_cases import (
    EvaluateAndNotifyUseCase,
    HistoryQueryUseCase,
    LatestReadingsUseCase,
    SetNotificationsUseCase,
    StartConversationUseCase,
    StatusReportUseCase,
    SubscribeUseCase,
    parse_count,
)
from waterme.shared.exceptions import (
    AlreadySubscribedError,
    ControllerNotFoundError,
    PreconditionError,
    StoreUnavailableError,
    UserNotFoundError,
    WaterMeError,
)
from waterme.shared.types import MacAddress, SensorKind, TelegramUserID, tags_for

logger = structlog.get_logger(__name__)

SANITY_TEXT = "Sanity test"
NO_READINGS_TEXT = "No readings available."
FAILURE_TEXT = "Something went wrong."
UNKNOWN_USER_TEXT = "Sorry, I don't know you yet. Send /start first."
NOT_SUBSCRIBED_TEXT = "You are not subscribed to any controller. Use /subscribe <mac address>."

COMMANDS: List[Tuple[str, str]] = [
    ("/subscribe <mac address>", "Follow a MicroController and receive its watering reminders"),
    ("/notifications on|off", "Turn watering reminders on or off"),
    ("/latest", "Sends latest registered data Sample for all the sensors of your MicroControllers"),
    ("/temperature", "Sends latest registered reading for all the Temperature sensors"),
    ("/humidity", "Sends latest registered reading for all the Humidity sensors"),
    ("/SMS", "Sends latest registered reading for all the Soil Moisture sensors"),
    ("/history <sensor> <number of readings>", "Sends the last <number of readings> readings of <sensor>"),
    ("/status", "Sends which kinds of sensor data are available for a watering decision"),
    ("/evaluate", "Checks right now whether your plants need water"),
]

KIND_COMMANDS: Dict[str, SensorKind] = {
    "/temperature": SensorKind.TEMPERATURE,
    "/humidity": SensorKind.HUMIDITY,
    "/SMS": SensorKind.SOIL_MOISTURE,
}


def welcome_text() -> str:
    text = "Welcome to WaterMe Telegram Bot\n There are several commands available: \n"
    for key, description in COMMANDS:
        text += f"{key} -> {description}\n"
    return text


def history_text(sensor: str, values: List[str]) -> str:
    if not values:
        return NO_READINGS_TEXT
    text = f"Readings Requested for {sensor}:\n"
    for value in values:
        text += f"{value}\n"
    return text


def parse_command(text: Optional[str]) -> Tuple[Optional[str], List[str]]:
    """Split message text into the command (bot suffix stripped) and its arguments."""
    if not text or not text.startswith("/"):
        return None, []
    parts = text.split()
    command = parts[0].split("@", 1)[0]
    return command, parts[1:]


class CommandRouter:
    """Dispatches chat commands to the use cases."""

    def __init__(
        self,
        messenger: Messenger,
        start: StartConversationUseCase,
        subscribe: SubscribeUseCase,
        notifications: SetNotificationsUseCase,
        notifier: EvaluateAndNotifyUseCase,
        history: HistoryQueryUseCase,
        latest: LatestReadingsUseCase,
        status: StatusReportUseCase
    ):
        self.messenger = messenger
        self.start = start
        self.subscribe = subscribe
        self.notifications = notifications
        self.notifier = notifier
        self.history = history
        self.latest = latest
        self.status = status

        self._handlers: Dict[str, Callable[[TelegramMessage, List[str]], Awaitable[List[str]]]] = {
            "/start": self._start,
            "/test": self._test,
            "/subscribe": self._subscribe,
            "/notifications": self._notifications,
            "/latest": self._latest,
            "/history": self._history,
            "/status": self._status,
            "/evaluate": self._evaluate,
        }
        for command in KIND_COMMANDS:
            self._handlers[command] = self._latest_of_kind

    async def handle(self, update: TelegramUpdate) -> bool:
        """
        Handle one webhook update.

        Returns:
            True when the update carried a known command
        """
        message = update.message
        if message is None or message.from_user is None:
            return False

        command, args = parse_command(message.text)
        handler = self._handlers.get(command) if command else None
        if handler is None:
            return False

        user_id = message.from_user.id
        log = logger.bind(command=command, user_id=user_id, update_id=update.update_id)
        log.info("Command received")

        try:
            replies = await handler(message, args)
        except UserNotFoundError:
            replies = [UNKNOWN_USER_TEXT]
        except StoreUnavailableError as e:
            log.error("Command aborted, store unavailable", error=e.message)
            replies = [FAILURE_TEXT]
        except WaterMeError as e:
            log.error("Command failed", error_type=type(e).__name__, error=e.message)
            replies = [FAILURE_TEXT]
        except Exception as e:
            # The webhook acknowledges every update, so nothing propagates past here
            log.exception("Command crashed", error=str(e))
            replies = [FAILURE_TEXT]

        for reply in replies:
            try:
                await self.messenger.send_message(user_id, reply, reply_to=message.message_id)
            except WaterMeError as e:
                log.warning("Reply not delivered", error=e.message)
                break

        return True

    async def _start(self, message: TelegramMessage, args: List[str]) -> List[str]:
        sender = message.from_user
        identity = TelegramIdentity(
            user_id=TelegramUserID(sender.id),
            first_name=sender.first_name,
            last_name=sender.last_name
        )
        await self.start.execute(identity)
        return [welcome_text()]

    async def _test(self, message: TelegramMessage, args: List[str]) -> List[str]:
        return [SANITY_TEXT]

    async def _subscribe(self, message: TelegramMessage, args: List[str]) -> List[str]:
        if not args:
            return ["Usage: /subscribe <mac address>"]

        mac_address = MacAddress(args[0])
        try:
            await self.subscribe.execute(TelegramUserID(message.from_user.id), mac_address)
        except ControllerNotFoundError:
            return [f"Sorry, no MicroController is registered as {mac_address}."]
        except AlreadySubscribedError:
            return [f"You are already subscribed to {mac_address}."]
        except PreconditionError:
            return ["Usage: /subscribe <mac address>"]

        return [f"Subscribed to {mac_address}. You will be told when your plants need water."]

    async def _notifications(self, message: TelegramMessage, args: List[str]) -> List[str]:
        choice = args[0].lower() if args else ""
        if choice not in ("on", "off"):
            return ["Usage: /notifications on|off"]

        enabled = choice == "on"
        await self.notifications.execute(TelegramUserID(message.from_user.id), enabled)
        return ["Notifications enabled." if enabled else "Notifications disabled."]

    async def _latest(self, message: TelegramMessage, args: List[str]) -> List[str]:
        snapshots = await self.latest.execute(TelegramUserID(message.from_user.id))
        if not snapshots:
            return [NOT_SUBSCRIBED_TEXT]

        replies = []
        for snapshot in snapshots:
            recorded = [reading.time for _, reading in snapshot.entries if reading is not None]
            text = f"{snapshot.mac_address}\n"
            if recorded:
                text += f"{recorded[-1]}\n"
            for sensor, reading in snapshot.entries:
                value = reading.value if reading is not None else "no readings"
                text += f"{sensor.type} -> {value}\n"
            replies.append(text)
        return replies

    async def _latest_of_kind(self, message: TelegramMessage, args: List[str]) -> List[str]:
        command, _ = parse_command(message.text)
        tags = tags_for(KIND_COMMANDS[command])
        snapshots = await self.latest.execute(TelegramUserID(message.from_user.id), tags=tags)
        if not snapshots:
            return [NOT_SUBSCRIBED_TEXT]

        replies = []
        for snapshot in snapshots:
            for sensor, reading in snapshot.entries:
                if reading is None:
                    continue
                threshold = sensor.watering_threshold
                replies.append(
                    f"{reading.time} : {sensor.type} -> {reading.value}\n"
                    f"Between the max: {threshold.max} and {threshold.min}"
                )
        return replies or [NO_READINGS_TEXT]

    async def _history(self, message: TelegramMessage, args: List[str]) -> List[str]:
        sensor = args[0] if args else None
        count = parse_count(args[1]) if len(args) > 1 else None

        results = await self.history.execute(TelegramUserID(message.from_user.id), sensor, count)
        replies = [
            history_text(sensor, [reading.value for reading in result.readings])
            for result in results
            if result.readings
        ]
        return replies or [NO_READINGS_TEXT]

    async def _status(self, message: TelegramMessage, args: List[str]) -> List[str]:
        report = await self.status.execute(TelegramUserID(message.from_user.id))
        if not report.controllers:
            return [NOT_SUBSCRIBED_TEXT]

        text = f"Engine {report.engine_version}\n"
        for controller in report.controllers:
            text += f"{controller.mac_address}\n"
            for kind, available in controller.availability.items():
                text += f"{kind.value}: {'available' if available else 'unavailable'}\n"
        return [text]

    async def _evaluate(self, message: TelegramMessage, args: List[str]) -> List[str]:
        summary = await self.notifier.execute()
        if not summary.store_available:
            return [FAILURE_TEXT]

        return [
            f"Evaluation finished: {len(summary.evaluated)} evaluated, "
            f"{summary.notifications_sent} reminders sent, "
            f"{len(summary.skipped)} skipped, {len(summary.failed)} failed."
        ]
