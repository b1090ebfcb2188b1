"""
Unit tests for the reading history query.
"""
import pytest

from waterme.core.domain.entities import Controller, Reading, Sensor
from waterme.core.use_cases import HistoryQueryUseCase, history, parse_count
from waterme.shared.exceptions import UserNotFoundError
from waterme.shared.types import MacAddress, TelegramUserID

from tests.conftest import make_user

R0, R1, R2 = Reading("t0", "r0"), Reading("t1", "r1"), Reading("t2", "r2")


@pytest.fixture
def controller() -> Controller:
    return Controller(
        mac_address=MacAddress("AA:BB"),
        sensors=[Sensor(type="temp1", readings=[R0, R1, R2])]
    )


class TestHistory:
    """Test cases for the history projection."""

    def test_newest_first(self, controller):
        assert history(controller, "temp", 2) == [R2, R1]

    def test_count_equal_to_log(self, controller):
        assert history(controller, "temp", 3) == [R2, R1, R0]

    def test_count_larger_than_log_is_clamped(self, controller):
        assert history(controller, "temp", 50) == [R2, R1, R0]

    @pytest.mark.parametrize("count", [0, -1, None])
    def test_non_positive_or_missing_count(self, controller, count):
        assert history(controller, "temp", count) == []

    def test_missing_substring(self, controller):
        assert history(controller, None, 2) == []

    def test_no_matching_sensor(self, controller):
        assert history(controller, "SMS", 2) == []

    def test_match_is_case_sensitive(self, controller):
        assert history(controller, "TEMP", 2) == []

    def test_sensor_without_readings(self):
        controller = Controller(mac_address=MacAddress("AA"), sensors=[Sensor(type="temp1")])
        assert history(controller, "temp", 3) == []

    def test_sensors_keep_registration_order(self):
        first = [Reading("a0", "a0"), Reading("a1", "a1")]
        second = [Reading("b0", "b0")]
        controller = Controller(
            mac_address=MacAddress("AA"),
            sensors=[
                Sensor(type="temp-inside", readings=first),
                Sensor(type="SMS"),
                Sensor(type="temp-outside", readings=second),
            ]
        )

        assert history(controller, "temp", 1) == [first[1], second[0]]

    def test_readings_not_reordered(self, controller):
        history(controller, "temp", 2)
        assert controller.sensors[0].readings == [R0, R1, R2]


class TestParseCount:

    @pytest.mark.parametrize("raw,expected", [
        ("3", 3),
        (" 4 ", 4),
        ("-1", -1),
        ("abc", None),
        ("2.5", None),
        (None, None),
    ])
    def test_parse(self, raw, expected):
        assert parse_count(raw) == expected


class TestHistoryQueryUseCase:

    async def test_unknown_user(self, user_repo):
        with pytest.raises(UserNotFoundError):
            await HistoryQueryUseCase(user_repo).execute(TelegramUserID(1), "temp", 2)

    async def test_runs_over_subscribed_controllers(self, store, user_repo, controller, garden_controller):
        store.add_controller(controller)
        store.add_controller(garden_controller)
        store.add_user(make_user(1, controllers=[garden_controller.mac_address, controller.mac_address]))

        results = await HistoryQueryUseCase(user_repo).execute(TelegramUserID(1), "temp", 2)

        assert [r.mac_address for r in results] == [garden_controller.mac_address, "AA:BB"]
        assert [r.value for r in results[0].readings] == ["22", "21"]
        assert results[1].readings == [R2, R1]
