"""
Application business logic and use cases.

This module contains the use case implementations that orchestrate
subscriptions, watering notifications and sensor queries.
"""

# Subscription use cases
from .subscriptions import (
    StartConversationUseCase,
    SubscribeUseCase,
    SetNotificationsUseCase
)

# Notification use cases
from .notifications import (
    EvaluateAndNotifyUseCase,
    EvaluationSummary
)

# Sensor query use cases
from .sensor_queries import (
    history,
    parse_count,
    HistoryQueryUseCase,
    LatestReadingsUseCase,
    StatusReportUseCase
)

__all__ = [
    # Subscriptions
    "StartConversationUseCase",
    "SubscribeUseCase",
    "SetNotificationsUseCase",

    # Notifications
    "EvaluateAndNotifyUseCase",
    "EvaluationSummary",

    # Sensor queries
    "history",
    "parse_count",
    "HistoryQueryUseCase",
    "LatestReadingsUseCase",
    "StatusReportUseCase"
]
