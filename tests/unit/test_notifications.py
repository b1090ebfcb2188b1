"""
Unit tests for the evaluation and notification pass.
"""
import asyncio

import pytest

from waterme.core.domain.entities import Controller
from waterme.core.use_cases import EvaluateAndNotifyUseCase, SetNotificationsUseCase
from waterme.core.use_cases.notifications import format_reminder
from waterme.shared.exceptions import CircuitBreakerOpenError, TimeoutError
from waterme.shared.types import MacAddress, TelegramUserID

from tests.conftest import make_sensor, make_user


def controller_for(mac: str, users=(), location=None) -> Controller:
    return Controller(
        mac_address=MacAddress(mac),
        location=location or mac,
        sensors=[make_sensor("SMS", ["300"])],
        users=[TelegramUserID(u) for u in users]
    )


@pytest.fixture
def notifier(controller_repo, engine, messenger) -> EvaluateAndNotifyUseCase:
    return EvaluateAndNotifyUseCase(controller_repo, engine, messenger)


class TestEvaluateAndNotify:
    """Test cases for EvaluateAndNotifyUseCase."""

    async def test_reminds_every_subscriber(self, store, notifier, messenger):
        store.add_controller(controller_for("AA", users=[1, 2]))
        store.add_user(make_user(1))
        store.add_user(make_user(2))

        summary = await notifier.execute()

        assert messenger.texts_for(1) == [format_reminder("AA")]
        assert messenger.texts_for(2) == [format_reminder("AA")]
        assert summary.evaluated == ["AA"]
        assert summary.watering_needed == ["AA"]
        assert summary.notifications_sent == 2

    def test_reminder_is_tagged_with_mac_address(self):
        assert "AA:BB" in format_reminder("AA:BB")

    async def test_at_most_one_reminder_per_user_per_controller(self, store, notifier, messenger):
        store.add_controller(controller_for("AA", users=[1, 1, 2]))
        store.add_user(make_user(1))
        store.add_user(make_user(2))

        await notifier.execute()

        assert len(messenger.texts_for(1)) == 1
        assert len(messenger.texts_for(2)) == 1

    async def test_user_following_two_controllers_gets_one_each(self, store, notifier, messenger):
        store.add_controller(controller_for("AA", users=[1]))
        store.add_controller(controller_for("BB", users=[1]))
        store.add_user(make_user(1))

        await notifier.execute()

        assert sorted(messenger.texts_for(1)) == [format_reminder("AA"), format_reminder("BB")]

    async def test_opted_out_user_is_skipped(self, store, notifier, messenger):
        store.add_controller(controller_for("AA", users=[1, 2]))
        store.add_user(make_user(1, notifications=False))
        store.add_user(make_user(2))

        await notifier.execute()

        assert messenger.texts_for(1) == []
        assert messenger.texts_for(2) == [format_reminder("AA")]

    async def test_opt_out_through_use_case(self, store, user_repo, notifier, messenger):
        store.add_controller(controller_for("AA", users=[1]))
        store.add_user(make_user(1))

        await SetNotificationsUseCase(user_repo).execute(TelegramUserID(1), False)
        await notifier.execute()

        assert messenger.sent == []

    async def test_negative_verdict_sends_nothing(self, store, engine, notifier, messenger):
        engine.result = False
        store.add_controller(controller_for("AA", users=[1]))
        store.add_user(make_user(1))

        summary = await notifier.execute()

        assert messenger.sent == []
        assert summary.evaluated == ["AA"]
        assert summary.watering_needed == []

    async def test_controller_without_users(self, store, notifier, messenger):
        store.add_controller(controller_for("AA"))

        summary = await notifier.execute()

        assert messenger.sent == []
        assert summary.evaluated == ["AA"]

    async def test_engine_receives_sensors_and_location(self, store, engine, notifier):
        store.add_controller(controller_for("AA", location={"lat": 1.0}))

        await notifier.execute()

        assert engine.calls == [{"lat": 1.0}]

    async def test_store_outage_aborts_pass(self, store, notifier, messenger):
        store.add_controller(controller_for("AA", users=[1]))
        store.add_user(make_user(1))
        store.available = False

        summary = await notifier.execute()

        assert summary.store_available is False
        assert summary.controllers_total == 0
        assert messenger.sent == []

    async def test_engine_failure_is_isolated(self, store, engine, notifier, messenger):
        store.add_controller(controller_for("AA", users=[1]))
        store.add_controller(controller_for("BB", users=[2]))
        store.add_user(make_user(1))
        store.add_user(make_user(2))
        engine.failing.add("AA")

        summary = await notifier.execute()

        assert summary.failed == ["AA"]
        assert summary.evaluated == ["BB"]
        assert messenger.texts_for(1) == []
        assert messenger.texts_for(2) == [format_reminder("BB")]

    async def test_subscriber_lookup_failure_is_isolated(self, store, notifier, messenger):
        store.add_controller(controller_for("AA", users=[1]))
        store.add_controller(controller_for("BB", users=[1]))
        store.add_user(make_user(1))
        store.failing_subscriber_lookups.add("AA")

        summary = await notifier.execute()

        assert summary.failed == ["AA"]
        assert messenger.texts_for(1) == [format_reminder("BB")]

    async def test_delivery_failure_does_not_stop_other_users(self, store, notifier, messenger):
        store.add_controller(controller_for("AA", users=[1, 2, 3]))
        for user_id in (1, 2, 3):
            store.add_user(make_user(user_id))
        messenger.failing_chats.add(2)

        summary = await notifier.execute()

        assert messenger.texts_for(1) == [format_reminder("AA")]
        assert messenger.texts_for(3) == [format_reminder("AA")]
        assert summary.notifications_sent == 2
        assert summary.delivery_failures == 1
        assert summary.failed == []

    @pytest.mark.parametrize("error", [
        CircuitBreakerOpenError("telegram"),
        TimeoutError("telegram._send", 30.0),
    ])
    async def test_unavailable_messenger_is_a_delivery_failure(self, error, store, notifier, messenger):
        store.add_controller(controller_for("AA", users=[1, 2]))
        store.add_controller(controller_for("BB", users=[3]))
        for user_id in (1, 2, 3):
            store.add_user(make_user(user_id))
        messenger.errors[1] = error

        summary = await notifier.execute()

        assert messenger.texts_for(2) == [format_reminder("AA")]
        assert messenger.texts_for(3) == [format_reminder("BB")]
        assert sorted(summary.evaluated) == ["AA", "BB"]
        assert summary.delivery_failures == 1
        assert summary.failed == []

    async def test_unexpected_delivery_error_fails_only_its_controller(self, store, notifier, messenger):
        store.add_controller(controller_for("AA", users=[1]))
        store.add_controller(controller_for("BB", users=[3]))
        store.add_user(make_user(1))
        store.add_user(make_user(3))
        messenger.errors[1] = RuntimeError("socket closed")

        summary = await notifier.execute()

        assert summary.failed == ["AA"]
        assert summary.evaluated == ["BB"]
        assert messenger.texts_for(3) == [format_reminder("BB")]
        assert notifier.in_flight == set()

    async def test_no_deduplication_across_passes(self, store, notifier, messenger):
        store.add_controller(controller_for("AA", users=[1]))
        store.add_user(make_user(1))

        await notifier.execute()
        await notifier.execute()

        assert len(messenger.texts_for(1)) == 2

    async def test_controller_in_flight_is_skipped(self, store, engine, notifier, messenger):
        store.add_controller(controller_for("AA", users=[1]))
        store.add_user(make_user(1))
        engine.gate = asyncio.Event()

        first = asyncio.create_task(notifier.execute())
        while not engine.calls:
            await asyncio.sleep(0)

        assert notifier.in_flight == {"AA"}
        second = await notifier.execute()
        assert second.skipped == ["AA"]
        assert second.evaluated == []

        engine.gate.set()
        first_summary = await first

        assert first_summary.evaluated == ["AA"]
        assert messenger.texts_for(1) == [format_reminder("AA")]
        assert notifier.in_flight == set()

    async def test_in_flight_marker_released_after_failure(self, store, engine, notifier):
        store.add_controller(controller_for("AA"))
        engine.failing.add("AA")

        await notifier.execute()

        assert notifier.in_flight == set()
