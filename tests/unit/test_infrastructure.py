"""
Unit tests for the infrastructure adapters: retries, Telegram delivery,
engine loading, configuration, log sanitization and the DI container.
"""
from typing import Any, List, Optional

import pytest
from telegram.error import BadRequest, Forbidden, NetworkError, RetryAfter

from waterme.core.domain.services import EvaluationEngine
from waterme.infrastructure.config import AppConfig
from waterme.infrastructure.di import DIContainer
from waterme.infrastructure.engine.loader import load_engine
from waterme.infrastructure.logging.sanitization import (
    LogSanitizationConfig,
    LogSanitizer,
    StructlogSanitizer,
)
from waterme.infrastructure.messaging.telegram import TelegramMessenger
from waterme.infrastructure.resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerState,
    ResilientClient,
    RetryConfig,
    RetryStrategy,
)
from waterme.shared.exceptions import (
    CircuitBreakerOpenError,
    CommunicationError,
    ConfigurationError,
    ExternalServiceError,
    MessageRejectedError,
)

BOT_TOKEN = "123456789:AAHdqTcvCH1vGWJxfSeofSAs0K5PALDsaw1"

NO_WAIT = RetryConfig(max_attempts=3, base_delay=0, jitter=False)


class FlakyCall:
    """Coroutine function failing ``failures`` times before succeeding."""

    def __init__(self, failures: int, error: Exception):
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "done"


class FakeBot:
    """Records send_message calls; raises queued errors first."""

    def __init__(self, errors: Optional[List[Exception]] = None):
        self.errors = list(errors or [])
        self.sent: List[Any] = []
        self.initialized = False

    async def initialize(self) -> None:
        self.initialized = True

    async def shutdown(self) -> None:
        self.initialized = False

    async def send_message(self, chat_id, text, reply_parameters=None):
        if self.errors:
            raise self.errors.pop(0)
        self.sent.append((chat_id, text, reply_parameters))


class TestRetryConfig:

    def test_exponential_backoff_is_capped(self):
        config = RetryConfig(base_delay=1.0, max_delay=5.0, jitter=False)
        assert [config.calculate_delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]

    def test_fixed_delay(self):
        config = RetryConfig(base_delay=2.0, strategy=RetryStrategy.FIXED_DELAY, jitter=False)
        assert config.calculate_delay(5) == 2.0


class TestResilientClient:

    async def test_retries_until_success(self):
        call = FlakyCall(2, CommunicationError("reset", service="test"))
        client = ResilientClient("retry-success", retry_config=NO_WAIT)

        assert await client.execute(call) == "done"
        assert call.calls == 3

    async def test_gives_up_after_max_attempts(self):
        call = FlakyCall(5, CommunicationError("reset", service="test"))
        client = ResilientClient("retry-exhausted", retry_config=NO_WAIT)

        with pytest.raises(CommunicationError):
            await client.execute(call)
        assert call.calls == 3

    async def test_rejected_message_is_not_retried(self):
        call = FlakyCall(5, MessageRejectedError("blocked", service="test"))
        client = ResilientClient("retry-rejected", retry_config=NO_WAIT)

        with pytest.raises(MessageRejectedError):
            await client.execute(call)
        assert call.calls == 1


class TestCircuitBreaker:

    async def test_opens_after_threshold(self):
        breaker = CircuitBreaker("breaker-open", CircuitBreakerConfig(failure_threshold=2, timeout_seconds=60))
        call = FlakyCall(10, CommunicationError("down", service="test"))

        for _ in range(2):
            with pytest.raises(CommunicationError):
                await breaker.call(call)

        assert breaker.state == CircuitBreakerState.OPEN
        with pytest.raises(CircuitBreakerOpenError):
            await breaker.call(call)
        assert call.calls == 2

    async def test_half_open_probe_closes(self):
        breaker = CircuitBreaker(
            "breaker-probe",
            CircuitBreakerConfig(failure_threshold=1, success_threshold=1, timeout_seconds=0)
        )
        call = FlakyCall(1, CommunicationError("down", service="test"))

        with pytest.raises(CommunicationError):
            await breaker.call(call)
        assert breaker.state == CircuitBreakerState.OPEN

        assert await breaker.call(call) == "done"
        assert breaker.state == CircuitBreakerState.CLOSED


class TestTelegramMessenger:

    def test_token_required(self):
        with pytest.raises(ConfigurationError):
            TelegramMessenger("")

    async def test_send_with_reply(self):
        bot = FakeBot()
        messenger = TelegramMessenger("", retry_config=NO_WAIT, bot=bot)

        await messenger.send_message(7, "Sanity test", reply_to=3)

        chat_id, text, reply_parameters = bot.sent[0]
        assert (chat_id, text) == (7, "Sanity test")
        assert reply_parameters.message_id == 3

    async def test_network_errors_are_retried(self):
        bot = FakeBot(errors=[NetworkError("connection reset")])
        messenger = TelegramMessenger("", retry_config=NO_WAIT, bot=bot)

        await messenger.send_message(7, "hello")

        assert bot.sent[0][:2] == (7, "hello")
        assert bot.sent[0][2] is None

    async def test_blocked_chat_is_not_retried(self):
        bot = FakeBot(errors=[Forbidden("bot was blocked by the user")])
        messenger = TelegramMessenger("", retry_config=NO_WAIT, bot=bot)

        with pytest.raises(MessageRejectedError):
            await messenger.send_message(7, "hello")
        assert bot.sent == []

    @pytest.mark.parametrize("error, expected", [
        (Forbidden("blocked"), MessageRejectedError),
        (BadRequest("chat not found"), MessageRejectedError),
        (RetryAfter(5), ExternalServiceError),
        (NetworkError("timeout"), CommunicationError),
    ])
    def test_error_translation(self, error, expected):
        translated = TelegramMessenger._translate(error, chat_id=7)

        assert type(translated) is expected
        assert translated.service == "telegram"
        assert translated.details["chat_id"] == 7

    async def test_lifecycle(self):
        bot = FakeBot()
        messenger = TelegramMessenger("", bot=bot)

        await messenger.initialize()
        assert bot.initialized
        await messenger.cleanup()
        assert not bot.initialized


class TestLoadEngine:

    @pytest.mark.parametrize("path", ["tests.conftest:StubEngine", "tests.conftest.StubEngine"])
    def test_loads_engine(self, path):
        engine = load_engine(path)

        assert isinstance(engine, EvaluationEngine)
        assert engine.version() == "stub-1.0"

    @pytest.mark.parametrize("path", [
        "",
        "   ",
        "StubEngine",
        "tests.conftest:make_user",
        "tests.conftest:Missing",
        "waterme_no_such_module:Engine",
    ])
    def test_invalid_paths(self, path):
        with pytest.raises(ConfigurationError):
            load_engine(path)


class TestAppConfig:

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", BOT_TOKEN)
        monkeypatch.setenv("NOTIFY_INTERVAL_MINUTES", "15")
        monkeypatch.setenv("SCHEDULER_ENABLED", "off")
        monkeypatch.setenv("WATERME_ENGINE", "tests.conftest:StubEngine")
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

        config = AppConfig.from_env(dotenv=False)

        assert config.telegram_bot_token == BOT_TOKEN
        assert config.notify_interval_minutes == 15
        assert config.scheduler_enabled is False
        assert config.engine_path == "tests.conftest:StubEngine"
        assert config.database.is_memory

    def test_defaults(self, monkeypatch):
        for name in ("NOTIFY_INTERVAL_MINUTES", "SCHEDULER_ENABLED", "LOG_FORMAT", "DATABASE_URL"):
            monkeypatch.delenv(name, raising=False)

        config = AppConfig.from_env(dotenv=False)

        assert config.notify_interval_minutes == 10
        assert config.scheduler_enabled is True
        assert config.log_format == "json"

    @pytest.mark.parametrize("raw", ["ten", "0", "-5"])
    def test_invalid_interval(self, monkeypatch, raw):
        monkeypatch.setenv("NOTIFY_INTERVAL_MINUTES", raw)
        with pytest.raises(ConfigurationError):
            AppConfig.from_env(dotenv=False)

    def test_unsupported_database(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "mysql://db/waterme")
        with pytest.raises(ConfigurationError):
            AppConfig.from_env(dotenv=False)


class TestLogSanitizer:

    def test_sensitive_fields(self):
        sanitized = LogSanitizer().sanitize_dict({
            "telegram_bot_token": BOT_TOKEN,
            "user": {"email": "ana@example.com", "user_id": 42},
        })

        assert sanitized["telegram_bot_token"] == LogSanitizer.REPLACEMENT_TEXT
        assert sanitized["user"] == {"email": LogSanitizer.REPLACEMENT_TEXT, "user_id": 42}

    def test_token_inside_text(self):
        text = LogSanitizer.sanitize_string(f"Request to api failed for {BOT_TOKEN}")
        assert BOT_TOKEN not in text

    def test_bot_api_url(self):
        url = LogSanitizer.sanitize_url(f"https://api.telegram.org/bot{BOT_TOKEN}/sendMessage")
        assert url == f"https://api.telegram.org/bot{LogSanitizer.REPLACEMENT_TEXT}/sendMessage"

    def test_processor(self):
        processor = StructlogSanitizer()
        event = {"event": "Request completed", "secret_token": "abc", "path": "/telegram/webhook"}

        sanitized = processor(None, "info", event)

        assert sanitized["secret_token"] == LogSanitizer.REPLACEMENT_TEXT
        assert sanitized["path"] == "/telegram/webhook"
        assert event["secret_token"] == "abc"

    def test_development_keeps_emails(self):
        sanitizer = LogSanitizationConfig("development").get_sanitizer()
        assert "email" not in sanitizer.field_patterns
        assert "token" in sanitizer.field_patterns


class Clock:
    pass


class Alarm:

    def __init__(self, clock: Clock):
        self.clock = clock
        self.closed = False

    async def cleanup(self) -> None:
        self.closed = True


class TestDIContainer:

    async def test_singleton_resolves_dependencies(self):
        container = DIContainer()
        container.register_singleton(Clock, Clock)
        container.register_singleton(Alarm, Alarm)

        alarm = await container.resolve(Alarm)

        assert alarm is await container.resolve(Alarm)
        assert alarm.clock is await container.resolve(Clock)

    async def test_transient(self):
        container = DIContainer()
        container.register_transient(Clock, Clock)
        assert await container.resolve(Clock) is not await container.resolve(Clock)

    async def test_factory_receives_dependencies(self):
        container = DIContainer()
        container.register_singleton(Clock, Clock)

        async def make_alarm(clock: Clock) -> Alarm:
            return Alarm(clock)

        container.register_factory(Alarm, make_alarm)

        first = await container.resolve(Alarm)
        assert first is not await container.resolve(Alarm)
        assert first.clock is await container.resolve(Clock)

    async def test_unregistered(self):
        container = DIContainer()
        container.register_singleton(Alarm, Alarm)

        with pytest.raises(ConfigurationError):
            await container.resolve(Alarm)

    async def test_cleanup(self):
        container = DIContainer()
        container.register_instance(Clock, Clock())
        container.register_singleton(Alarm, Alarm)
        alarm = await container.resolve(Alarm)

        await container.cleanup()

        assert alarm.closed
        assert not container.is_registered(Clock)
