"""Chat and telephony connectors for Duty Alarm Bridge."""

from .telegram import TelegramChatGateway
from .twilio_messaging import TwilioConnector

__all__ = [
    "TelegramChatGateway",
    "TwilioConnector",
]
