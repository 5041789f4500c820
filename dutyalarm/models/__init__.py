"""Data models for Duty Alarm Bridge."""

from .alert import Alert, AlertStatus, EscalationTier, TierOutcome, AcceptOutcome
from .callback import AcceptToken

__all__ = [
    "Alert",
    "AlertStatus",
    "EscalationTier",
    "TierOutcome",
    "AcceptOutcome",
    "AcceptToken",
]
