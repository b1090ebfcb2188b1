"""
Global pytest configuration and fixtures for WaterMe tests.

The in-memory repositories copy records in and out, like a real store, and
yield to the event loop on every call so that concurrent use cases interleave.
"""
import asyncio
import copy
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import pytest

from waterme.core.domain.entities import (
    Controller,
    Reading,
    Sensor,
    TelegramIdentity,
    User,
    WateringThreshold,
    create_user,
)
from waterme.core.domain.repositories import ControllerRepository, UserRepository
from waterme.core.domain.services import EvaluationEngine, Messenger
from waterme.shared.exceptions import (
    CommunicationError,
    DuplicateResourceError,
    StoreUnavailableError,
)
from waterme.shared.types import MacAddress, TelegramUserID


class InMemoryStore:
    """Records shared by the in-memory repositories."""

    def __init__(self):
        self.controllers: Dict[str, Controller] = {}
        self.users: Dict[int, User] = {}
        self.available = True
        self.failing_controller_saves: Set[str] = set()
        self.failing_subscriber_lookups: Set[str] = set()

    def add_controller(self, controller: Controller) -> Controller:
        self.controllers[controller.mac_address] = copy.deepcopy(controller)
        return controller

    def add_user(self, user: User) -> User:
        self.users[user.user_id] = copy.deepcopy(user)
        return user

    async def round_trip(self, operation: str) -> None:
        await asyncio.sleep(0)
        if not self.available:
            raise StoreUnavailableError("Store offline", operation=operation)


class InMemoryControllerRepository(ControllerRepository):

    def __init__(self, store: InMemoryStore):
        self.store = store

    async def get_by_mac(self, mac_address: MacAddress) -> Optional[Controller]:
        await self.store.round_trip("get_by_mac")
        controller = self.store.controllers.get(mac_address)
        return copy.deepcopy(controller) if controller else None

    async def get_all(self) -> List[Controller]:
        await self.store.round_trip("get_all")
        return [copy.deepcopy(c) for c in self.store.controllers.values()]

    async def save(self, controller: Controller) -> Controller:
        await self.store.round_trip("save_controller")
        if controller.mac_address in self.store.failing_controller_saves:
            raise StoreUnavailableError("Write rejected", operation="save_controller")
        self.store.controllers[controller.mac_address] = copy.deepcopy(controller)
        return copy.deepcopy(controller)

    async def get_subscribers(self, controller: Controller) -> List[User]:
        await self.store.round_trip("get_subscribers")
        if controller.mac_address in self.store.failing_subscriber_lookups:
            raise StoreUnavailableError("Lookup failed", operation="get_subscribers")
        return [
            copy.deepcopy(self.store.users[user_id])
            for user_id in controller.users
            if user_id in self.store.users
        ]


class InMemoryUserRepository(UserRepository):

    def __init__(self, store: InMemoryStore):
        self.store = store

    async def create(self, user: User) -> User:
        await self.store.round_trip("create_user")
        if user.user_id in self.store.users:
            raise DuplicateResourceError("user", str(user.user_id))
        self.store.users[user.user_id] = copy.deepcopy(user)
        return copy.deepcopy(user)

    async def get_by_telegram_id(self, user_id: TelegramUserID) -> Optional[User]:
        await self.store.round_trip("get_user")
        user = self.store.users.get(user_id)
        return copy.deepcopy(user) if user else None

    async def save(self, user: User) -> User:
        await self.store.round_trip("save_user")
        self.store.users[user.user_id] = copy.deepcopy(user)
        return copy.deepcopy(user)

    async def get_subscribed_controllers(self, user: User) -> List[Controller]:
        await self.store.round_trip("get_subscribed_controllers")
        return [
            copy.deepcopy(self.store.controllers[mac])
            for mac in user.microcontrollers
            if mac in self.store.controllers
        ]


class RecordingMessenger(Messenger):
    """Messenger that records deliveries instead of sending them."""

    def __init__(self):
        self.sent: List[Tuple[int, str, Optional[int]]] = []
        self.failing_chats: Set[int] = set()
        self.errors: Dict[int, Exception] = {}

    async def send_message(self, chat_id: int, text: str, reply_to: Optional[int] = None) -> None:
        await asyncio.sleep(0)
        if chat_id in self.errors:
            raise self.errors[chat_id]
        if chat_id in self.failing_chats:
            raise CommunicationError("Chat unreachable", service="test")
        self.sent.append((chat_id, text, reply_to))

    def texts_for(self, chat_id: int) -> List[str]:
        return [text for cid, text, _ in self.sent if cid == chat_id]


class StubEngine(EvaluationEngine):
    """Engine returning a fixed verdict; locations in ``failing`` raise."""

    def __init__(self, verdict: bool = True):
        self.result = verdict
        self.failing: Set[Any] = set()
        self.gate: Optional[asyncio.Event] = None
        self.calls: List[Any] = []

    async def verdict(self, sensors: Sequence[Sensor], location: Any) -> bool:
        self.calls.append(location)
        if self.gate is not None:
            await self.gate.wait()
        if location in self.failing:
            raise RuntimeError(f"engine cannot evaluate {location}")
        return self.result

    def version(self) -> str:
        return "stub-1.0"


def make_sensor(sensor_type: str, values: Sequence[str] = (), threshold: Tuple[Optional[float], Optional[float]] = (None, None)) -> Sensor:
    return Sensor(
        type=sensor_type,
        readings=[Reading(time=f"2024-05-01T10:0{i}:00Z", value=v) for i, v in enumerate(values)],
        watering_threshold=WateringThreshold(max=threshold[0], min=threshold[1])
    )


def make_user(user_id: int, first_name: str = "Ana", notifications: bool = True, controllers: Sequence[str] = ()) -> User:
    user = create_user(TelegramIdentity(user_id=TelegramUserID(user_id), first_name=first_name, last_name="Silva"))
    user.notifications = notifications
    user.microcontrollers = [MacAddress(mac) for mac in controllers]
    return user


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def controller_repo(store: InMemoryStore) -> InMemoryControllerRepository:
    return InMemoryControllerRepository(store)


@pytest.fixture
def user_repo(store: InMemoryStore) -> InMemoryUserRepository:
    return InMemoryUserRepository(store)


@pytest.fixture
def messenger() -> RecordingMessenger:
    return RecordingMessenger()


@pytest.fixture
def engine() -> StubEngine:
    return StubEngine(verdict=True)


@pytest.fixture
def garden_controller() -> Controller:
    """Controller with one sensor of each on-board kind."""
    return Controller(
        mac_address=MacAddress("AA:BB:CC:00:00:01"),
        location={"lat": 38.7, "lon": -9.1},
        sensors=[
            make_sensor("temp1", ["20", "21", "22"], threshold=(30.0, 10.0)),
            make_sensor("DHT22-hum", ["55", "60"], threshold=(80.0, 40.0)),
            make_sensor("SMS-bed", ["300"], threshold=(500.0, 200.0)),
        ]
    )
