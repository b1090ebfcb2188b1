"""
Domain entities for WaterMe.

Controllers own their sensors and readings; users and controllers only
reference each other by natural key (user_id / mac_address).
"""

from typing import Optional, List, Any
from dataclasses import dataclass, field

from waterme.shared.types import MacAddress, TelegramUserID

DEFAULT_EMAIL = "not provided"


@dataclass(frozen=True)
class Reading:
    """One timestamped measurement, immutable once appended."""
    time: str
    value: str


@dataclass(frozen=True)
class WateringThreshold:
    """Display-only bounds attached to a sensor."""
    max: Optional[float] = None
    min: Optional[float] = None


@dataclass
class Sensor:
    """A measurement channel on a controller.

    ``readings`` is ordered by recording time, oldest first.
    """
    type: str
    readings: List[Reading] = field(default_factory=list)
    watering_threshold: WateringThreshold = field(default_factory=WateringThreshold)

    def __post_init__(self):
        if not self.type or not self.type.strip():
            raise ValueError("Sensor type cannot be empty")

    @property
    def latest(self) -> Optional[Reading]:
        return self.readings[-1] if self.readings else None

    def matches(self, fragment: str) -> bool:
        """Case-sensitive substring match on the sensor type."""
        return fragment in self.type


@dataclass
class Controller:
    """A physical irrigation unit identified by its MAC address."""
    mac_address: MacAddress
    location: Any = None
    sensors: List[Sensor] = field(default_factory=list)
    users: List[TelegramUserID] = field(default_factory=list)

    def __post_init__(self):
        if not self.mac_address or not self.mac_address.strip():
            raise ValueError("Controller MAC address cannot be empty")

    def has_user(self, user_id: TelegramUserID) -> bool:
        return user_id in self.users

    def add_user(self, user_id: TelegramUserID) -> bool:
        """Reference a user for fan-out. Returns False if already referenced."""
        if self.has_user(user_id):
            return False
        self.users.append(user_id)
        return True

    def sensors_matching(self, fragment: str) -> List[Sensor]:
        return [sensor for sensor in self.sensors if sensor.matches(fragment)]


@dataclass(frozen=True)
class TelegramIdentity:
    """Chat identity of a user; only ``user_id`` is used as the key."""
    user_id: TelegramUserID
    first_name: str = ""
    last_name: str = ""


@dataclass
class User:
    """A chat user with notification preferences and subscriptions."""
    telegram: TelegramIdentity
    email: str = DEFAULT_EMAIL
    notifications: bool = True
    microcontrollers: List[MacAddress] = field(default_factory=list)

    @property
    def user_id(self) -> TelegramUserID:
        return self.telegram.user_id

    def is_subscribed_to(self, mac_address: MacAddress) -> bool:
        return mac_address in self.microcontrollers

    def add_controller(self, mac_address: MacAddress) -> bool:
        """Reference a controller. Returns False if already referenced."""
        if self.is_subscribed_to(mac_address):
            return False
        self.microcontrollers.append(mac_address)
        return True

    def reconcile_identity(self, identity: TelegramIdentity) -> bool:
        """Refresh the stored names from the latest chat identity.

        Returns True when anything changed.
        """
        if identity.user_id != self.user_id:
            raise ValueError("Cannot reconcile a different Telegram user")
        if identity == self.telegram:
            return False
        self.telegram = identity
        return True


# Factory functions for common entity creation
def create_user(identity: TelegramIdentity, email: Optional[str] = None) -> User:
    """Factory function to create a new user with notifications enabled."""
    return User(
        telegram=identity,
        email=email or DEFAULT_EMAIL,
        notifications=True,
        microcontrollers=[]
    )
