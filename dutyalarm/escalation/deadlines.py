"""Per-alert countdown timers for the SMS and call tiers."""

import asyncio
from typing import Awaitable, Callable, Dict, List, Optional

from dutyalarm.models.alert import Alert, AlertStatus, EscalationTier, TierOutcome
from dutyalarm.utils.logging import get_logger, log_escalation_event

logger = get_logger(__name__)

TierAction = Callable[[Alert], Awaitable[object]]


class DeadlineScheduler:
    """Runs two independent delayed actions per alert.

    Both tiers are armed at the same instant with their own delay and wait
    on the alert's shared cancellation event. Whichever comes first wins:
    the event being set (the alert was accepted) or the delay elapsing (the
    tier action runs).
    """

    def __init__(self):
        self._tasks: Dict[str, List[asyncio.Task]] = {}

    def arm(
        self,
        alert: Alert,
        tier1_delay: float,
        tier2_delay: float,
        on_tier1_fire: TierAction,
        on_tier2_fire: TierAction,
        cancel_token: Optional[asyncio.Event] = None
    ) -> List[asyncio.Task]:
        """Start both tier timers for an alert.

        A caller-supplied ``cancel_token`` replaces the alert's own event, so
        ``cancel`` and the timers always share one handle.
        """
        if cancel_token is not None:
            alert.cancel = cancel_token
        token = alert.cancel
        alert.status = AlertStatus.ESCALATING

        tasks = [
            asyncio.create_task(
                self._run_tier(alert, EscalationTier.SMS, tier1_delay, on_tier1_fire, token),
                name=f"escalation-{alert.alert_id}-sms"
            ),
            asyncio.create_task(
                self._run_tier(alert, EscalationTier.CALL, tier2_delay, on_tier2_fire, token),
                name=f"escalation-{alert.alert_id}-call"
            ),
        ]
        self._tasks[alert.alert_id] = tasks
        for task in tasks:
            task.add_done_callback(lambda _t, alert_id=alert.alert_id: self._forget(alert_id))

        logger.info(
            "Escalation timers armed",
            alert_id=alert.alert_id,
            sms_delay=tier1_delay,
            call_delay=tier2_delay
        )
        return tasks

    def cancel(self, alert: Alert) -> None:
        """Signal both timers of an alert to stand down."""
        alert.cancel.set()

    def is_armed(self, alert_id: str) -> bool:
        """Whether any tier timer of the alert is still pending."""
        return any(not task.done() for task in self._tasks.get(alert_id, []))

    @property
    def pending_count(self) -> int:
        return sum(
            1 for tasks in self._tasks.values() for task in tasks if not task.done()
        )

    async def shutdown(self) -> None:
        """Cancel every outstanding timer task."""
        tasks = [task for tasks in self._tasks.values() for task in tasks if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Deadline scheduler stopped", cancelled=len(tasks))

    def _forget(self, alert_id: str) -> None:
        tasks = self._tasks.get(alert_id)
        if tasks and all(task.done() for task in tasks):
            del self._tasks[alert_id]

    async def _run_tier(
        self,
        alert: Alert,
        tier: EscalationTier,
        delay: float,
        action: TierAction,
        cancel_token: asyncio.Event
    ) -> TierOutcome:
        try:
            await asyncio.wait_for(cancel_token.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
        else:
            log_escalation_event(logger, alert.alert_id, tier.value, TierOutcome.CANCELLED.value)
            return TierOutcome.CANCELLED

        # Acceptance may land between the timeout and this check
        if alert.accepted:
            log_escalation_event(logger, alert.alert_id, tier.value, TierOutcome.SKIPPED.value)
            return TierOutcome.SKIPPED

        try:
            await action(alert)
        except Exception as e:
            logger.error(
                "Escalation tier action failed",
                alert_id=alert.alert_id,
                tier=tier.value,
                error=str(e),
                exc_info=True
            )
            return TierOutcome.FAILED

        alert.fired_tiers.add(tier)
        log_escalation_event(logger, alert.alert_id, tier.value, TierOutcome.FIRED.value)
        return TierOutcome.FIRED
