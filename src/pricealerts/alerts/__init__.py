"""Alert layer -- alert records, persistence, trigger evaluation and scheduling."""

from pricealerts.alerts.database import AlertDatabase
from pricealerts.alerts.engine import TriggerEngine, condition_holds
from pricealerts.alerts.models import (
    Alert,
    AlertFrequency,
    AlertOperator,
    AlertPriority,
    AlertStats,
    AlertStatus,
    ChannelKind,
    EvaluationSummary,
    TriggerEvent,
)
from pricealerts.alerts.scheduler import AlertScheduler
from pricealerts.alerts.service import AlertService
from pricealerts.alerts.store import AlertStore, SqliteAlertStore
from pricealerts.alerts.templates import ALERT_TEMPLATES, AlertTemplate

__all__ = [
    "ALERT_TEMPLATES",
    "Alert",
    "AlertDatabase",
    "AlertFrequency",
    "AlertOperator",
    "AlertPriority",
    "AlertScheduler",
    "AlertService",
    "AlertStats",
    "AlertStatus",
    "AlertStore",
    "AlertTemplate",
    "ChannelKind",
    "EvaluationSummary",
    "SqliteAlertStore",
    "TriggerEngine",
    "TriggerEvent",
    "condition_holds",
]
