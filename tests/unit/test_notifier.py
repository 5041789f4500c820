"""Unit tests for the notification gateway."""

import pytest

from dutyalarm.escalation.notifier import NotificationGateway
from dutyalarm.models.alert import Alert


def make_alert() -> Alert:
    return Alert(alert_id="abc123", label="GroupA", origin_chat_id=100, origin_message_id=55)


class TestNotificationGateway:
    """Test best-effort SMS and call dispatch."""

    @pytest.mark.asyncio
    async def test_sms_goes_to_every_duty_officer(self, notifier, twilio, duty_numbers):
        results = await notifier.send_escalation_sms(make_alert())

        assert results == {number: True for number in duty_numbers}
        assert [number for number, _ in twilio.sms] == duty_numbers
        assert all("GroupA" in message and "abc123" in message for _, message in twilio.sms)

    @pytest.mark.asyncio
    async def test_call_goes_to_every_duty_officer(self, notifier, twilio, duty_numbers):
        results = await notifier.place_escalation_call(make_alert())

        assert results == {number: True for number in duty_numbers}
        assert all("GroupA" in message for _, message in twilio.calls)

    @pytest.mark.asyncio
    async def test_failed_contact_does_not_stop_others(self, notifier, twilio, duty_numbers):
        twilio.failing = {duty_numbers[0]}

        sms_results = await notifier.send_escalation_sms(make_alert())
        call_results = await notifier.place_escalation_call(make_alert())

        assert sms_results == {duty_numbers[0]: False, duty_numbers[1]: True}
        assert call_results == {duty_numbers[0]: False, duty_numbers[1]: True}
        assert [number for number, _ in twilio.sms] == [duty_numbers[1]]

    @pytest.mark.asyncio
    async def test_empty_roster_is_not_an_error(self, notifier, roster, twilio):
        roster.numbers = []

        assert await notifier.send_escalation_sms(make_alert()) == {}
        assert await notifier.place_escalation_call(make_alert()) == {}
        assert twilio.sms == []
        assert twilio.calls == []

    @pytest.mark.asyncio
    async def test_disabled_channels_skip_dispatch(self, roster, twilio):
        gateway = NotificationGateway(roster, twilio, enable_sms=False, enable_calls=False)

        assert await gateway.send_escalation_sms(make_alert()) == {}
        assert await gateway.place_escalation_call(make_alert()) == {}
        assert roster.queries == 0

    @pytest.mark.asyncio
    async def test_connector_returning_none_counts_as_failure(
        self, notifier, twilio, duty_numbers, monkeypatch
    ):
        async def silent_send(to_number, message):
            return None

        monkeypatch.setattr(twilio, "send_sms", silent_send)

        results = await notifier.send_text(duty_numbers, "hello")

        assert results == {number: False for number in duty_numbers}

    def test_injected_components_are_kept(self, roster, twilio):
        gateway = NotificationGateway(roster, twilio)

        assert gateway.roster is roster
        assert gateway.connector is twilio
