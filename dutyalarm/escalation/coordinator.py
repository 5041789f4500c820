"""Escalation coordinator: raises alarms and handles their acceptance."""

from datetime import timedelta
from typing import Any, Dict, List, Optional

from dutyalarm.config import settings
from dutyalarm.connectors.telegram import TelegramChatGateway, accept_keyboard
from dutyalarm.escalation.deadlines import DeadlineScheduler
from dutyalarm.escalation.notifier import NotificationGateway
from dutyalarm.escalation.registry import AlertRegistry
from dutyalarm.exceptions import ChatDeliveryError, InvalidCallbackError
from dutyalarm.models.alert import AcceptOutcome, Alert, ChatId, utcnow
from dutyalarm.models.callback import AcceptToken
from dutyalarm.utils.logging import get_logger, log_escalation_event
from dutyalarm.utils.validation import sanitize_input

logger = get_logger(__name__)

ACCEPT_BUTTON_TEXT = "Accept alarm"
MAX_LABEL_LENGTH = 200


class EscalationCoordinator:
    """Entry points used by the chat-command layer.

    Raising an alarm posts it to the escalation channel and arms the SMS and
    call deadlines. Accepting it flips the in-memory state first and only
    then confirms in chat, so a failed confirmation can never leave the
    alarm escalating.
    """

    def __init__(
        self,
        chat_gateway: TelegramChatGateway,
        notifier: NotificationGateway,
        registry: Optional[AlertRegistry] = None,
        deadlines: Optional[DeadlineScheduler] = None,
        broadcast_chat_id: Optional[ChatId] = None,
        sms_delay: Optional[float] = None,
        call_delay: Optional[float] = None,
        retention: Optional[timedelta] = None
    ):
        self.chat_gateway = chat_gateway
        self.notifier = notifier
        self.registry = registry if registry is not None else AlertRegistry()
        self.deadlines = deadlines if deadlines is not None else DeadlineScheduler()
        self.broadcast_chat_id = (
            broadcast_chat_id if broadcast_chat_id is not None else settings.ALARM_CHANNEL_ID
        )
        self.sms_delay = sms_delay if sms_delay is not None else settings.ESCALATION_SMS_DELAY_SECONDS
        self.call_delay = call_delay if call_delay is not None else settings.ESCALATION_CALL_DELAY_SECONDS
        self.retention = retention if retention is not None else timedelta(
            minutes=settings.ALERT_RETENTION_MINUTES
        )

    async def raise_alert(
        self,
        label: str,
        origin_chat_id: ChatId,
        origin_message_id: int
    ) -> str:
        """Broadcast an alarm and start its escalation deadlines.

        Raises AlertIdExhaustedError if no alert id can be allocated.
        """
        label = sanitize_input(label, max_length=MAX_LABEL_LENGTH) or str(origin_chat_id)
        alert_id = self.registry.allocate_id()

        alert = Alert(
            alert_id=alert_id,
            label=label,
            origin_chat_id=origin_chat_id,
            origin_message_id=origin_message_id,
            broadcast_chat_id=self.broadcast_chat_id,
        )

        callback_data = AcceptToken(alert_id=alert_id, label=label).encode()

        # Must be findable before the accept button exists
        self.registry.create(alert)

        try:
            alert.broadcast_message_id = await self.chat_gateway.post_message(
                self.broadcast_chat_id,
                f"🚨 ALARM from {label}",
                reply_markup=accept_keyboard(ACCEPT_BUTTON_TEXT, callback_data)
            )
        except ChatDeliveryError as e:
            # Escalation by phone still goes ahead without the chat broadcast
            logger.error("Failed to broadcast alarm", alert_id=alert_id, label=label, error=str(e))
        except Exception as e:
            logger.error("Unexpected error broadcasting alarm", alert_id=alert_id,
                         label=label, error=str(e), exc_info=True)

        if alert.accepted:
            # Accepted while the broadcast was in flight
            await self._confirm_in_channel(alert, alert.accepted_by, label)
            logger.info("Alarm accepted before escalation was armed",
                        alert_id=alert_id, user=alert.accepted_by)
            return alert_id

        self.deadlines.arm(
            alert,
            self.sms_delay,
            self.call_delay,
            self.notifier.send_escalation_sms,
            self.notifier.place_escalation_call,
        )

        logger.info(
            "Alarm raised",
            alert_id=alert_id,
            label=label,
            origin_chat_id=origin_chat_id,
            origin_message_id=origin_message_id,
            broadcast_message_id=alert.broadcast_message_id
        )
        return alert_id

    async def accept_alert(
        self,
        alert_id: str,
        accepting_user: str,
        label: Optional[str] = None
    ) -> AcceptOutcome:
        """Mark an alarm as handled and stop its escalation.

        Unknown or already accepted alarms are a no-op. Never raises.
        """
        alert = self.registry.take_for_acceptance(alert_id, accepted_by=accepting_user)
        if alert is None:
            logger.warning("No active alert found", alert_id=alert_id, user=accepting_user)
            return AcceptOutcome.NOT_FOUND

        try:
            self.deadlines.cancel(alert)
            log_escalation_event(logger, alert_id, "all", "accepted", user=accepting_user)

            origin_label = alert.label or label or str(alert.origin_chat_id)
            await self._confirm_in_channel(alert, accepting_user, origin_label)
            await self._reply_in_origin(alert, accepting_user)
        finally:
            self.registry.remove(alert_id)

        return AcceptOutcome.ACCEPTED

    async def handle_accept_callback(self, payload: str, accepting_user: str) -> AcceptOutcome:
        """Accept the alarm referenced by an accept-button payload."""
        try:
            token = AcceptToken.decode(payload)
        except InvalidCallbackError as e:
            logger.warning("Ignoring invalid accept payload", error=str(e), user=accepting_user)
            return AcceptOutcome.INVALID

        return await self.accept_alert(token.alert_id, accepting_user, token.label or None)

    async def _confirm_in_channel(self, alert: Alert, accepting_user: str, origin_label: str) -> None:
        if alert.broadcast_message_id is None:
            logger.warning("Alarm has no broadcast message to update", alert_id=alert.alert_id)
            return

        try:
            await self.chat_gateway.edit_message(
                alert.broadcast_chat_id,
                alert.broadcast_message_id,
                f"✅ Alarm accepted by {accepting_user} for client: {origin_label}"
            )
            logger.info("Alarm message updated",
                        alert_id=alert.alert_id,
                        chat_id=alert.broadcast_chat_id,
                        message_id=alert.broadcast_message_id)
        except Exception as e:
            logger.error("Failed to update alarm message", alert_id=alert.alert_id, error=str(e))

    async def _reply_in_origin(self, alert: Alert, accepting_user: str) -> None:
        try:
            await self.chat_gateway.post_message(
                alert.origin_chat_id,
                f"{accepting_user} is checking the alarm.",
                reply_to_message_id=alert.origin_message_id
            )
        except Exception as e:
            logger.error("Failed to acknowledge alarm in origin chat",
                         alert_id=alert.alert_id,
                         chat_id=alert.origin_chat_id,
                         error=str(e))

    async def expire_stale_alerts(self) -> int:
        """Remove never-accepted alerts past their retention window."""
        expired = self.registry.purge_expired(
            utcnow(),
            self.call_delay,
            self.retention,
            is_settled=lambda alert_id: not self.deadlines.is_armed(alert_id)
        )
        for alert in expired:
            log_escalation_event(
                logger, alert.alert_id, "all", "expired",
                label=alert.label,
                fired_tiers=sorted(tier.value for tier in alert.fired_tiers)
            )
        return len(expired)

    def get_alert_status(self, alert_id: str) -> Optional[Dict[str, Any]]:
        alert = self.registry.find_by_alert_id(alert_id)
        if alert is None:
            return None
        status = alert.to_dict()
        status["timers_pending"] = self.deadlines.is_armed(alert_id)
        return status

    def list_active_alerts(self) -> List[Dict[str, Any]]:
        return [alert.to_dict() for alert in self.registry.list_alerts()]

    async def shutdown(self) -> None:
        await self.deadlines.shutdown()
