"""Thread-safe in-memory registry of active alerts."""

import secrets
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from dutyalarm.exceptions import AlertIdExhaustedError, DuplicateAlertError
from dutyalarm.models.alert import Alert, AlertStatus
from dutyalarm.utils.logging import get_logger

logger = get_logger(__name__)

ALERT_ID_BYTES = 6
MAX_ID_ATTEMPTS = 8


def generate_alert_id() -> str:
    """Random 12-character hex token."""
    return secrets.token_hex(ALERT_ID_BYTES)


class AlertRegistry:
    """Mapping from alert id to :class:`Alert`.

    Every operation holds the registry lock, so single-alert operations are
    atomic with respect to timers and request handlers touching the same
    registry.
    """

    def __init__(self, id_factory: Optional[Callable[[], str]] = None):
        self._alerts: Dict[str, Alert] = {}
        self._lock = threading.Lock()
        self._id_factory = id_factory or generate_alert_id

    def allocate_id(self) -> str:
        """Generate an alert id not currently registered."""
        with self._lock:
            for _ in range(MAX_ID_ATTEMPTS):
                alert_id = self._id_factory()
                if alert_id not in self._alerts:
                    return alert_id

        logger.error("Alert id space exhausted", attempts=MAX_ID_ATTEMPTS)
        raise AlertIdExhaustedError(
            f"Could not allocate a free alert id after {MAX_ID_ATTEMPTS} attempts"
        )

    def create(self, alert: Alert) -> None:
        with self._lock:
            if alert.alert_id in self._alerts:
                raise DuplicateAlertError(alert.alert_id)
            self._alerts[alert.alert_id] = alert

        logger.debug("Alert registered", alert_id=alert.alert_id, label=alert.label)

    def find_by_alert_id(self, alert_id: str) -> Optional[Alert]:
        with self._lock:
            return self._alerts.get(alert_id)

    def take_for_acceptance(self, alert_id: str, accepted_by: Optional[str] = None) -> Optional[Alert]:
        """Mark an unaccepted alert as accepted and return it.

        Returns None when the alert is unknown or was already accepted, so
        exactly one caller wins the acceptance.
        """
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None or alert.accepted:
                return None
            alert.mark_accepted(accepted_by)
            return alert

    def remove(self, alert_id: str) -> None:
        """Remove an alert; no-op if absent."""
        with self._lock:
            removed = self._alerts.pop(alert_id, None)

        if removed is not None:
            logger.debug("Alert removed", alert_id=alert_id)

    def purge_expired(
        self,
        now: datetime,
        call_delay: float,
        retention: timedelta,
        is_settled: Optional[Callable[[str], bool]] = None
    ) -> List[Alert]:
        """Remove unaccepted alerts whose retention window has passed.

        ``is_settled`` lets the caller keep alerts whose timers are still
        running.
        """
        purged = []
        with self._lock:
            for alert_id, alert in list(self._alerts.items()):
                if alert.accepted:
                    continue
                if not alert.is_expired(now, call_delay, retention):
                    continue
                if is_settled is not None and not is_settled(alert_id):
                    continue
                alert.status = AlertStatus.EXPIRED
                purged.append(self._alerts.pop(alert_id))

        return purged

    def list_alerts(self) -> List[Alert]:
        with self._lock:
            return list(self._alerts.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._alerts)

    def __contains__(self, alert_id: object) -> bool:
        with self._lock:
            return alert_id in self._alerts
