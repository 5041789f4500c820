"""Telegram Bot API connector for alarm broadcast and acknowledgement messages."""

import time
from typing import Any, Dict, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from dutyalarm.config import settings
from dutyalarm.exceptions import ChatDeliveryError
from dutyalarm.models.alert import ChatId
from dutyalarm.utils.logging import get_logger, log_external_api_call

logger = get_logger(__name__)


def accept_keyboard(button_text: str, callback_data: str) -> Dict[str, Any]:
    """Inline keyboard with a single accept button."""
    return {
        "inline_keyboard": [
            [{"text": button_text, "callback_data": callback_data}]
        ]
    }


class TelegramChatGateway:
    """Thin async wrapper around the Telegram Bot API methods the bot uses."""

    def __init__(
        self,
        bot_token: Optional[str] = None,
        api_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.bot_token = bot_token if bot_token is not None else settings.TELEGRAM_BOT_TOKEN
        self.api_url = (api_url or settings.TELEGRAM_API_URL).rstrip("/")
        self._client = client
        self._owns_client = client is None

        if not self.bot_token:
            logger.warning("Telegram bot token not configured")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True
    )
    async def _call(self, method: str, payload: Dict[str, Any]) -> Any:
        """Invoke a Bot API method and return its ``result``."""
        url = f"{self.api_url}/bot{self.bot_token}/{method}"
        started = time.monotonic()

        response = await self.client.post(url, json=payload)
        duration_ms = (time.monotonic() - started) * 1000

        try:
            body = response.json()
        except ValueError:
            body = {"ok": False, "description": response.text}

        if response.status_code != 200 or not body.get("ok"):
            description = body.get("description", f"HTTP {response.status_code}")
            log_external_api_call(
                logger, "telegram", method, False, duration_ms,
                status_code=response.status_code,
                error=description
            )
            raise ChatDeliveryError(method, description, response.status_code)

        log_external_api_call(logger, "telegram", method, True, duration_ms)
        return body.get("result")

    async def post_message(
        self,
        chat_id: ChatId,
        text: str,
        reply_markup: Optional[Dict[str, Any]] = None,
        reply_to_message_id: Optional[int] = None
    ) -> int:
        """Send a text message and return its message id."""
        payload: Dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        if reply_to_message_id is not None:
            payload["reply_parameters"] = {
                "message_id": reply_to_message_id,
                "allow_sending_without_reply": True
            }

        result = await self._call("sendMessage", payload)
        return result["message_id"]

    async def edit_message(self, chat_id: ChatId, message_id: int, text: str) -> None:
        """Replace the text of a message; drops its inline keyboard."""
        await self._call("editMessageText", {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text
        })

    async def answer_callback(self, callback_query_id: str, text: Optional[str] = None) -> None:
        """Acknowledge a button press so the client stops its spinner."""
        payload: Dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        await self._call("answerCallbackQuery", payload)
