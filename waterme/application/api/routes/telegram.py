"""
Telegram webhook route.

Telegram posts every update here. The request is authenticated with the
secret token configured through ``setWebhook``; the update is then handed to
the command router. The route answers 200 for every authenticated update so
that Telegram does not redeliver it.
"""

import hmac
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header
import structlog

from waterme.application.api.dependencies import get_app_config, provide
from waterme.application.commands import CommandRouter
from waterme.application.models import TelegramUpdate
from waterme.infrastructure.config import AppConfig
from waterme.shared.exceptions import AuthenticationError

logger = structlog.get_logger(__name__)
router = APIRouter()


def verify_secret(expected: str, received: Optional[str]) -> None:
    """Raise AuthenticationError unless the secret header matches."""
    if not expected:
        return
    if received is None or not hmac.compare_digest(expected.encode(), received.encode()):
        raise AuthenticationError("Invalid webhook secret token")


@router.post("/webhook")
async def telegram_webhook(
    update: TelegramUpdate,
    secret_token: Optional[str] = Header(None, alias="X-Telegram-Bot-Api-Secret-Token"),
    config: AppConfig = Depends(get_app_config),
    command_router: CommandRouter = Depends(provide(CommandRouter))
) -> Dict[str, Any]:
    """
    Receive one Telegram update.

    Raises:
        401: Secret token missing or wrong
    """
    verify_secret(config.telegram_webhook_secret, secret_token)

    handled = await command_router.handle(update)
    if not handled:
        logger.debug("Update ignored", update_id=update.update_id)

    return {"ok": True, "handled": handled}
