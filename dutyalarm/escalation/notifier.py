"""Duty roster lookup and SMS/voice dispatch as one notification capability."""

from typing import Dict, List, Optional

from dutyalarm.config import settings
from dutyalarm.connectors.twilio_messaging import TwilioConnector
from dutyalarm.escalation.contacts import DutyRoster
from dutyalarm.models.alert import Alert, utcnow
from dutyalarm.utils.logging import get_logger
from dutyalarm.utils.validation import mask_phone_number

logger = get_logger(__name__)


class NotificationGateway:
    """Delivers escalation notifications to the duty officers.

    Delivery is best-effort per contact: a failure for one number is logged
    and the remaining numbers are still tried.
    """

    def __init__(
        self,
        roster: Optional[DutyRoster] = None,
        connector: Optional[TwilioConnector] = None,
        enable_sms: Optional[bool] = None,
        enable_calls: Optional[bool] = None
    ):
        self.roster = roster if roster is not None else DutyRoster()
        self.connector = connector if connector is not None else TwilioConnector()
        self.enable_sms = settings.ENABLE_SMS_ALERTS if enable_sms is None else enable_sms
        self.enable_calls = settings.ENABLE_VOICE_CALLS if enable_calls is None else enable_calls

    async def list_on_call_contacts(self) -> List[str]:
        return await self.roster.list_on_call_contacts()

    async def send_text(self, contacts: List[str], message: str) -> Dict[str, bool]:
        """Send an SMS to every contact; returns per-contact success."""
        results: Dict[str, bool] = {}
        for contact in contacts:
            try:
                results[contact] = await self.connector.send_sms(contact, message) is not None
            except Exception as e:
                logger.error("Error sending SMS", phone=mask_phone_number(contact), error=str(e))
                results[contact] = False

        return results

    async def place_voice_call(self, contacts: List[str], message: str) -> Dict[str, bool]:
        """Call every contact; returns per-contact success."""
        results: Dict[str, bool] = {}
        for contact in contacts:
            try:
                results[contact] = await self.connector.place_call(contact, message) is not None
            except Exception as e:
                logger.error("Error placing call", phone=mask_phone_number(contact), error=str(e))
                results[contact] = False

        return results

    async def send_escalation_sms(self, alert: Alert) -> Dict[str, bool]:
        """First tier: text the duty officers about an unaccepted alarm."""
        if not self.enable_sms:
            logger.info("SMS escalation disabled", alert_id=alert.alert_id)
            return {}

        contacts = await self.list_on_call_contacts()
        if not contacts:
            logger.warning("No duty officers found, SMS not sent", alert_id=alert.alert_id)
            return {}

        message = (
            f"ALARM from {alert.label} has not been accepted for "
            f"{self._elapsed_minutes(alert)} min. Alert {alert.alert_id}. "
            f"Please check the alarm channel."
        )
        results = await self.send_text(contacts, message)
        self._log_results("sms", alert, results)
        return results

    async def place_escalation_call(self, alert: Alert) -> Dict[str, bool]:
        """Second tier: call the duty officers."""
        if not self.enable_calls:
            logger.info("Voice call escalation disabled", alert_id=alert.alert_id)
            return {}

        contacts = await self.list_on_call_contacts()
        if not contacts:
            logger.warning("No duty officers found, call not placed", alert_id=alert.alert_id)
            return {}

        message = (
            f"Attention. An alarm from {alert.label} is still not accepted. "
            f"Please check the alarm channel."
        )
        results = await self.place_voice_call(contacts, message)
        self._log_results("call", alert, results)
        return results

    @staticmethod
    def _elapsed_minutes(alert: Alert) -> int:
        return max(1, int((utcnow() - alert.created_at).total_seconds() // 60))

    @staticmethod
    def _log_results(channel: str, alert: Alert, results: Dict[str, bool]) -> None:
        delivered = sum(1 for ok in results.values() if ok)
        log = logger.info if delivered == len(results) else logger.warning
        log(
            "Escalation notifications dispatched",
            alert_id=alert.alert_id,
            channel=channel,
            delivered=delivered,
            failed=len(results) - delivered
        )
