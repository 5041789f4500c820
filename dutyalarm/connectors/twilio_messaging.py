"""Twilio connector for SMS and voice call escalations."""

import asyncio
import time
from typing import Optional

from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.rest import Client
from twilio.twiml.voice_response import VoiceResponse
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from dutyalarm.config import settings
from dutyalarm.utils.logging import get_logger, log_external_api_call
from dutyalarm.utils.validation import mask_phone_number, validate_phone

logger = get_logger(__name__)

SMS_MAX_LENGTH = 1600
VOICE_LANGUAGE = "en-US"


def is_transient_twilio_error(exc: BaseException) -> bool:
    """Server errors, throttling and transport failures are worth retrying."""
    if isinstance(exc, TwilioRestException):
        return exc.status == 429 or exc.status >= 500
    return isinstance(exc, (TwilioException, OSError))


class TwilioConnector:
    """Sends SMS messages and places voice calls through Twilio."""

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        client: Optional[Client] = None
    ):
        self.account_sid = account_sid if account_sid is not None else settings.TWILIO_ACCOUNT_SID
        self.auth_token = auth_token if auth_token is not None else settings.TWILIO_AUTH_TOKEN
        self.from_number = from_number if from_number is not None else settings.TWILIO_FROM_NUMBER

        if client is not None:
            self.client = client
        elif self.account_sid and self.auth_token:
            self.client = Client(self.account_sid, self.auth_token)
        else:
            self.client = None
            logger.warning("Twilio credentials not configured")

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    async def send_sms(self, to_number: str, message: str) -> Optional[str]:
        """Send SMS message. Returns the message SID, or None on failure."""
        if not self.client:
            logger.error("Twilio client not initialized")
            return None

        if not validate_phone(to_number):
            logger.error("Invalid phone number format", phone=mask_phone_number(to_number))
            return None

        started = time.monotonic()
        try:
            message_obj = await self._create_message(to_number, message[:SMS_MAX_LENGTH])
        except (TwilioException, OSError) as e:
            log_external_api_call(
                logger, "twilio", "send_sms", False, (time.monotonic() - started) * 1000,
                to_number=mask_phone_number(to_number),
                error_code=getattr(e, 'code', None),
                error=str(e)
            )
            return None

        log_external_api_call(
            logger, "twilio", "send_sms", True, (time.monotonic() - started) * 1000,
            to_number=mask_phone_number(to_number),
            message_sid=message_obj.sid,
            message_length=len(message)
        )
        return message_obj.sid

    async def place_call(self, to_number: str, message: str) -> Optional[str]:
        """Place a voice call that reads the message aloud. Returns the call SID."""
        if not self.client:
            logger.error("Twilio client not initialized")
            return None

        if not validate_phone(to_number):
            logger.error("Invalid phone number format", phone=mask_phone_number(to_number))
            return None

        twiml = VoiceResponse()
        twiml.say(message, language=VOICE_LANGUAGE)
        twiml.pause(length=1)
        twiml.say(message, language=VOICE_LANGUAGE)

        started = time.monotonic()
        try:
            call = await self._create_call(to_number, str(twiml))
        except (TwilioException, OSError) as e:
            log_external_api_call(
                logger, "twilio", "place_call", False, (time.monotonic() - started) * 1000,
                to_number=mask_phone_number(to_number),
                error_code=getattr(e, 'code', None),
                error=str(e)
            )
            return None

        log_external_api_call(
            logger, "twilio", "place_call", True, (time.monotonic() - started) * 1000,
            to_number=mask_phone_number(to_number),
            call_sid=call.sid
        )
        return call.sid

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception(is_transient_twilio_error),
        reraise=True
    )
    async def _create_message(self, to_number: str, body: str):
        return await asyncio.to_thread(
            self.client.messages.create,
            body=body,
            from_=self.from_number,
            to=to_number
        )

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception(is_transient_twilio_error),
        reraise=True
    )
    async def _create_call(self, to_number: str, twiml: str):
        return await asyncio.to_thread(
            self.client.calls.create,
            twiml=twiml,
            from_=self.from_number,
            to=to_number
        )

    async def check_connection(self) -> bool:
        """Check Twilio connection by validating credentials."""
        if not self.client:
            logger.error("Twilio client not initialized")
            return False

        try:
            account = await asyncio.to_thread(
                lambda: self.client.api.accounts(self.account_sid).fetch()
            )
        except (TwilioException, OSError) as e:
            logger.error(
                "Twilio connection test failed",
                error_code=getattr(e, 'code', None),
                error=str(e)
            )
            return False

        logger.info(
            "Twilio connection test successful",
            account_sid=account.sid,
            status=account.status
        )
        return True
