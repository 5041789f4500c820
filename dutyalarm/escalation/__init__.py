"""Escalation components for Duty Alarm Bridge."""

from .coordinator import EscalationCoordinator
from .contacts import DutyRoster
from .deadlines import DeadlineScheduler
from .notifier import NotificationGateway
from .registry import AlertRegistry
from .scheduler import EscalationScheduler

__all__ = [
    "EscalationCoordinator",
    "DutyRoster",
    "DeadlineScheduler",
    "NotificationGateway",
    "AlertRegistry",
    "EscalationScheduler",
]
