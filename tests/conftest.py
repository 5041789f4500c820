"""Pytest configuration and fixtures."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

import pytest
import pytest_asyncio

from dutyalarm.escalation.coordinator import EscalationCoordinator
from dutyalarm.escalation.deadlines import DeadlineScheduler
from dutyalarm.escalation.notifier import NotificationGateway
from dutyalarm.escalation.registry import AlertRegistry
from dutyalarm.exceptions import ChatDeliveryError


SMS_DELAY = 0.05
CALL_DELAY = 0.15
BROADCAST_CHAT_ID = -1001234567890
DUTY_NUMBERS = ["+15550001", "+15550002"]


class FakeChatGateway:
    """Records chat traffic instead of talking to Telegram."""

    def __init__(self):
        self.posted: List[Dict[str, Any]] = []
        self.edited: List[Dict[str, Any]] = []
        self.answered: List[Dict[str, Any]] = []
        self.fail_broadcast = False
        self.fail_edit = False
        self.fail_reply = False
        self.on_broadcast: Optional[Callable[[], Awaitable[Any]]] = None
        self._next_message_id = 500

    async def post_message(
        self,
        chat_id,
        text: str,
        reply_markup: Optional[Dict[str, Any]] = None,
        reply_to_message_id: Optional[int] = None
    ) -> int:
        if reply_to_message_id is None and self.fail_broadcast:
            raise ChatDeliveryError("sendMessage", "Bad Gateway", 502)
        if reply_to_message_id is not None and self.fail_reply:
            raise ChatDeliveryError("sendMessage", "Bad Gateway", 502)

        self._next_message_id += 1
        message_id = self._next_message_id
        self.posted.append({
            "chat_id": chat_id,
            "text": text,
            "reply_markup": reply_markup,
            "reply_to_message_id": reply_to_message_id,
            "message_id": message_id,
        })
        if reply_to_message_id is None and self.on_broadcast is not None:
            await self.on_broadcast()
        return message_id

    async def edit_message(self, chat_id, message_id: int, text: str) -> None:
        if self.fail_edit:
            raise ChatDeliveryError("editMessageText", "message to edit not found", 400)
        self.edited.append({"chat_id": chat_id, "message_id": message_id, "text": text})

    async def answer_callback(self, callback_query_id: str, text: Optional[str] = None) -> None:
        self.answered.append({"id": callback_query_id, "text": text})

    @property
    def replies(self) -> List[Dict[str, Any]]:
        return [p for p in self.posted if p["reply_to_message_id"] is not None]

    @property
    def broadcasts(self) -> List[Dict[str, Any]]:
        return [p for p in self.posted if p["reply_to_message_id"] is None]


class FakeRoster:
    """Duty roster returning a fixed list of numbers."""

    def __init__(self, numbers: Optional[List[str]] = None):
        self.numbers = list(DUTY_NUMBERS if numbers is None else numbers)
        self.queries = 0

    async def list_on_call_contacts(self) -> List[str]:
        self.queries += 1
        return list(self.numbers)


class FakeTwilioConnector:
    """Stands in for TwilioConnector; numbers in ``failing`` raise."""

    def __init__(self, failing: Optional[set] = None):
        self.sms: List[tuple] = []
        self.calls: List[tuple] = []
        self.failing = failing or set()
        self.is_configured = True
        self.connection_ok = True

    async def send_sms(self, to_number: str, message: str) -> Optional[str]:
        if to_number in self.failing:
            raise RuntimeError("carrier unavailable")
        self.sms.append((to_number, message))
        return f"SM{len(self.sms):04d}"

    async def place_call(self, to_number: str, message: str) -> Optional[str]:
        if to_number in self.failing:
            raise RuntimeError("carrier unavailable")
        self.calls.append((to_number, message))
        return f"CA{len(self.calls):04d}"

    async def check_connection(self) -> bool:
        return self.connection_ok


@pytest.fixture
def duty_numbers():
    return list(DUTY_NUMBERS)


@pytest.fixture
def broadcast_chat_id():
    return BROADCAST_CHAT_ID


@pytest.fixture
def wait_for_both_tiers():
    """Sleep until both tiers of an alert raised by ``coordinator`` have fired."""
    async def _wait():
        await asyncio.sleep(CALL_DELAY + 0.15)
    return _wait


@pytest.fixture
def chat_gateway():
    return FakeChatGateway()


@pytest.fixture
def roster():
    return FakeRoster()


@pytest.fixture
def twilio():
    return FakeTwilioConnector()


@pytest.fixture
def notifier(roster, twilio):
    return NotificationGateway(roster=roster, connector=twilio, enable_sms=True, enable_calls=True)


@pytest.fixture
def registry():
    return AlertRegistry()


@pytest_asyncio.fixture
async def coordinator(chat_gateway, notifier, registry):
    """Coordinator with sub-second escalation delays."""
    service = EscalationCoordinator(
        chat_gateway,
        notifier,
        registry=registry,
        deadlines=DeadlineScheduler(),
        broadcast_chat_id=BROADCAST_CHAT_ID,
        sms_delay=SMS_DELAY,
        call_delay=CALL_DELAY,
    )
    yield service
    await service.shutdown()
