"""
Type definitions for WaterMe.

This module contains the custom type definitions used throughout
the application to keep identifiers and sensor kinds explicit.
"""

from typing import NewType, Tuple
from enum import Enum

# Natural keys of the two record types
MacAddress = NewType('MacAddress', str)
TelegramUserID = NewType('TelegramUserID', int)


class SensorKind(str, Enum):
    """Sensor kinds the evaluation engine reports availability for."""
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    SOIL_MOISTURE = "soil_moisture"
    EXTERNAL_WEATHER = "external_weather"


# Substrings of Sensor.type that identify each on-board kind
SENSOR_KIND_TAGS = {
    SensorKind.TEMPERATURE: ("temp",),
    SensorKind.HUMIDITY: ("hum", "DHT"),
    SensorKind.SOIL_MOISTURE: ("SMS",),
}


def tags_for(kind: SensorKind) -> Tuple[str, ...]:
    """Return the type tags matching a sensor kind (empty for off-board kinds)."""
    return SENSOR_KIND_TAGS.get(kind, ())
