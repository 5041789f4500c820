"""In-memory alert model for duty escalation."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional, Set, Union


ChatId = Union[int, str]


class AlertStatus(str, Enum):
    """Alert lifecycle status."""

    CREATED = "created"
    ESCALATING = "escalating"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


class EscalationTier(str, Enum):
    """Timed follow-up tiers of an unaccepted alert."""

    SMS = "sms"
    CALL = "call"


class TierOutcome(str, Enum):
    """How a single tier timer ended."""

    FIRED = "fired"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"
    FAILED = "failed"


class AcceptOutcome(str, Enum):
    """Result of handling an accept event."""

    ACCEPTED = "accepted"
    NOT_FOUND = "not_found"
    INVALID = "invalid"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Alert:
    """One escalation instance.

    Correlates the chat message that raised the alarm with the broadcast
    message in the escalation channel, and carries the cancellation handle
    shared by both tier timers.
    """
    alert_id: str
    label: str
    origin_chat_id: ChatId
    origin_message_id: int
    broadcast_chat_id: Optional[ChatId] = None
    broadcast_message_id: Optional[int] = None
    accepted: bool = False
    cancel: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    status: AlertStatus = AlertStatus.CREATED
    created_at: datetime = field(default_factory=utcnow)
    accepted_at: Optional[datetime] = None
    accepted_by: Optional[str] = None
    fired_tiers: Set[EscalationTier] = field(default_factory=set)

    def mark_accepted(self, accepted_by: Optional[str] = None) -> None:
        self.accepted = True
        self.accepted_by = accepted_by
        self.accepted_at = utcnow()
        self.status = AlertStatus.ACCEPTED

    def is_expired(self, now: datetime, call_delay: float, retention: timedelta) -> bool:
        """Past the call deadline plus the retention window."""
        return now >= self.created_at + timedelta(seconds=call_delay) + retention

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "label": self.label,
            "status": self.status.value,
            "accepted": self.accepted,
            "accepted_by": self.accepted_by,
            "origin_chat_id": self.origin_chat_id,
            "origin_message_id": self.origin_message_id,
            "broadcast_chat_id": self.broadcast_chat_id,
            "broadcast_message_id": self.broadcast_message_id,
            "created_at": self.created_at.isoformat(),
            "accepted_at": self.accepted_at.isoformat() if self.accepted_at else None,
            "fired_tiers": sorted(tier.value for tier in self.fired_tiers),
        }
