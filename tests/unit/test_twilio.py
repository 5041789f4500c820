"""Unit tests for the Twilio connector."""

from unittest.mock import MagicMock

import pytest
from tenacity import wait_none
from twilio.base.exceptions import TwilioRestException

from dutyalarm.connectors.twilio_messaging import TwilioConnector, is_transient_twilio_error


def make_connector():
    client = MagicMock()
    client.messages.create.return_value = MagicMock(sid="SM123")
    client.calls.create.return_value = MagicMock(sid="CA456")
    connector = TwilioConnector(
        account_sid="AC000", auth_token="token", from_number="+15550000000", client=client
    )
    return connector, client


class TestTwilioConnector:
    """Test SMS and call dispatch."""

    @pytest.mark.asyncio
    async def test_send_sms(self):
        connector, client = make_connector()

        sid = await connector.send_sms("+15550001111", "ALARM from GroupA")

        assert sid == "SM123"
        client.messages.create.assert_called_once_with(
            body="ALARM from GroupA", from_="+15550000000", to="+15550001111"
        )

    @pytest.mark.asyncio
    async def test_place_call_reads_message(self):
        connector, client = make_connector()

        sid = await connector.place_call("+15550001111", "Alarm from GroupA")

        assert sid == "CA456"
        kwargs = client.calls.create.call_args.kwargs
        assert kwargs["to"] == "+15550001111"
        assert kwargs["from_"] == "+15550000000"
        assert kwargs["twiml"].count("Alarm from GroupA") == 2
        assert "<Say" in kwargs["twiml"]

    @pytest.mark.asyncio
    async def test_invalid_number_not_dialled(self):
        connector, client = make_connector()

        assert await connector.send_sms("12", "hi") is None
        assert await connector.place_call("not-a-number", "hi") is None
        client.messages.create.assert_not_called()
        client.calls.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_unconfigured_connector(self):
        connector = TwilioConnector(account_sid="", auth_token="", from_number="")

        assert connector.is_configured is False
        assert await connector.send_sms("+15550001111", "hi") is None
        assert await connector.place_call("+15550001111", "hi") is None

    @pytest.mark.asyncio
    async def test_check_connection(self):
        connector, client = make_connector()
        client.api.accounts.return_value.fetch.return_value = MagicMock(sid="AC000", status="active")

        assert await connector.check_connection() is True
        client.api.accounts.assert_called_once_with("AC000")

        client.api.accounts.return_value.fetch.side_effect = TwilioRestException(401, "/Accounts")
        assert await connector.check_connection() is False


class TestTwilioRetries:
    """Test which Twilio failures are retried."""

    @pytest.fixture(autouse=True)
    def no_backoff(self, monkeypatch):
        monkeypatch.setattr(TwilioConnector._create_message.retry, "wait", wait_none())
        monkeypatch.setattr(TwilioConnector._create_call.retry, "wait", wait_none())

    def test_transient_error_classification(self):
        assert is_transient_twilio_error(TwilioRestException(503, "/Messages")) is True
        assert is_transient_twilio_error(TwilioRestException(429, "/Messages")) is True
        assert is_transient_twilio_error(ConnectionError("reset by peer")) is True
        assert is_transient_twilio_error(TwilioRestException(400, "/Messages")) is False
        assert is_transient_twilio_error(TwilioRestException(404, "/Calls")) is False

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self):
        """A rejected number fails at once so the next officer is not delayed."""
        connector, client = make_connector()
        client.messages.create.side_effect = TwilioRestException(
            400, "/Messages", msg="The 'To' number is not a valid phone number", code=21211
        )

        assert await connector.send_sms("+15550001111", "hi") is None
        assert client.messages.create.call_count == 1

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self):
        connector, client = make_connector()
        client.messages.create.side_effect = [
            TwilioRestException(503, "/Messages"),
            MagicMock(sid="SM789"),
        ]

        assert await connector.send_sms("+15550001111", "hi") == "SM789"
        assert client.messages.create.call_count == 2

    @pytest.mark.asyncio
    async def test_call_gives_up_after_attempts(self):
        connector, client = make_connector()
        client.calls.create.side_effect = TwilioRestException(500, "/Calls")

        assert await connector.place_call("+15550001111", "hi") is None
        assert client.calls.create.call_count == 2
