"""
Telegram implementation of the Messenger collaborator.

Messages are sent with python-telegram-bot's ``Bot``. Transport failures are
translated into CommunicationError and retried through a ResilientClient;
refusals (blocked bot, unknown chat) are not retried.
"""

from typing import Optional

import structlog
from telegram import Bot, ReplyParameters
from telegram.error import BadRequest, Forbidden, NetworkError, RetryAfter, TelegramError

from waterme.core.domain.services import Messenger
from waterme.infrastructure.resilience import (
    CircuitBreakerConfig,
    ResilientClient,
    RetryConfig,
)
from waterme.shared.exceptions import (
    CommunicationError,
    ConfigurationError,
    ExternalServiceError,
    MessageRejectedError,
)

logger = structlog.get_logger(__name__)

SERVICE_NAME = "telegram"


class TelegramMessenger(Messenger):
    """Messenger delivering plain-text messages through the Telegram Bot API."""

    def __init__(
        self,
        token: str,
        retry_config: Optional[RetryConfig] = None,
        circuit_breaker_config: Optional[CircuitBreakerConfig] = None,
        bot: Optional[Bot] = None
    ):
        if not token and bot is None:
            raise ConfigurationError("TELEGRAM_BOT_TOKEN is required to deliver messages")

        self.bot = bot or Bot(token=token)
        self.client = ResilientClient(
            SERVICE_NAME,
            retry_config=retry_config or RetryConfig(max_attempts=3, base_delay=0.5, timeout_seconds=30.0),
            circuit_breaker_config=circuit_breaker_config or CircuitBreakerConfig()
        )
        self._initialized = False

    async def initialize(self) -> None:
        """Open the bot's HTTP session."""
        if self._initialized:
            return
        try:
            await self.bot.initialize()
        except TelegramError as e:
            raise self._translate(e)
        self._initialized = True
        logger.info("Telegram messenger initialized")

    async def send_message(self, chat_id: int, text: str, reply_to: Optional[int] = None) -> None:
        """
        Deliver a text message.

        Raises:
            CommunicationError: When delivery fails after retries
            MessageRejectedError: When Telegram refuses the message
        """
        await self.client.execute(self._send, chat_id, text, reply_to)
        logger.debug("Message delivered", chat_id=chat_id, length=len(text))

    async def _send(self, chat_id: int, text: str, reply_to: Optional[int]) -> None:
        reply_parameters = None
        if reply_to is not None:
            reply_parameters = ReplyParameters(message_id=reply_to, allow_sending_without_reply=True)

        try:
            await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                reply_parameters=reply_parameters
            )
        except TelegramError as e:
            raise self._translate(e, chat_id)

    @staticmethod
    def _translate(error: TelegramError, chat_id: Optional[int] = None) -> CommunicationError:
        """Map python-telegram-bot errors onto the WaterMe hierarchy."""
        details = {"chat_id": chat_id} if chat_id is not None else {}

        if isinstance(error, (Forbidden, BadRequest)):
            return MessageRejectedError(str(error), service=SERVICE_NAME, details=details)
        if isinstance(error, RetryAfter):
            details["retry_after"] = str(error.retry_after)
            return ExternalServiceError(SERVICE_NAME, status_code=429, details=details)
        if isinstance(error, NetworkError):
            return CommunicationError(str(error), service=SERVICE_NAME, details=details)
        return ExternalServiceError(SERVICE_NAME, response_body=str(error), details=details)

    async def shutdown(self) -> None:
        """Close the bot's HTTP session."""
        if not self._initialized:
            return
        await self.bot.shutdown()
        self._initialized = False
        logger.info("Telegram messenger shut down")

    async def cleanup(self) -> None:
        await self.shutdown()
