"""
Pydantic models for the WaterMe HTTP surface.

Telegram updates arrive as JSON on the webhook; only the fields the command
router reads are modelled, everything else is ignored.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from waterme.core.use_cases import EvaluationSummary


# Telegram update models
class TelegramUser(BaseModel):
    """Sender of a Telegram message."""
    model_config = ConfigDict(extra="ignore")

    id: int
    is_bot: bool = False
    first_name: str = ""
    last_name: str = ""


class TelegramChat(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    type: str = "private"


class TelegramMessage(BaseModel):
    """Incoming chat message; ``from`` is a reserved word, hence the alias."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message_id: int
    from_user: Optional[TelegramUser] = Field(None, alias="from")
    chat: TelegramChat
    date: int = 0
    text: Optional[str] = None


class TelegramUpdate(BaseModel):
    """Telegram webhook payload."""
    model_config = ConfigDict(extra="ignore")

    update_id: int
    message: Optional[TelegramMessage] = None
    edited_message: Optional[TelegramMessage] = None


# Configuration models
class APIConfig(BaseModel):
    """Configuration for FastAPI application."""
    title: str = "WaterMe Bot"
    version: str = "1.0.0"
    description: str = "Telegram front end for the WaterMe irrigation network"
    docs_url: str = "/docs"
    redoc_url: str = "/redoc"
    openapi_url: str = "/openapi.json"


# Status and Health models
class HealthStatus(str, Enum):
    """Health status enumeration."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class DependencyStatus(BaseModel):
    """Status of a system dependency."""
    name: str
    status: HealthStatus
    response_time_ms: float
    details: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response model."""
    status: HealthStatus
    timestamp: datetime
    version: str
    dependencies: List[DependencyStatus]
    metrics: Dict[str, Any] = {}


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str
    detail: Optional[str] = None
    code: Optional[str] = None


# System models
class EvaluationSummaryResponse(BaseModel):
    """Result of a manual evaluation pass."""
    pass_id: str
    controllers_total: int
    evaluated: List[str]
    watering_needed: List[str]
    skipped: List[str]
    failed: List[str]
    notifications_sent: int
    delivery_failures: int
    store_available: bool

    @classmethod
    def from_summary(cls, summary: EvaluationSummary) -> "EvaluationSummaryResponse":
        return cls(
            pass_id=summary.pass_id,
            controllers_total=summary.controllers_total,
            evaluated=list(summary.evaluated),
            watering_needed=list(summary.watering_needed),
            skipped=list(summary.skipped),
            failed=list(summary.failed),
            notifications_sent=summary.notifications_sent,
            delivery_failures=summary.delivery_failures,
            store_available=summary.store_available
        )


class EngineInfoResponse(BaseModel):
    """Loaded evaluation engine."""
    engine: str
    version: str
