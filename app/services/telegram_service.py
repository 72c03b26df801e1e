from typing import Optional

import httpx

from app.logging_config import get_logger

logger = get_logger("telegram_service")

API_ROOT = "https://api.telegram.org"


class TelegramService:
    """Outbound Bot API calls. Failures come back as ``{"ok": False, ...}`` dicts, never raised."""

    def __init__(
        self,
        bot_token: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self._endpoint = f"{API_ROOT}/bot{bot_token}"
        self._transport = transport
        self._timeout = timeout

    async def _call(self, method: str, payload: dict) -> dict:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(f"{self._endpoint}/{method}", json=payload)
                body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                f"Telegram {method} failed: {e}",
                extra={"context": {"chat_id": payload.get("chat_id")}},
            )
            return {"ok": False, "error": str(e)}

        if not body.get("ok"):
            logger.warning(
                f"Telegram {method} rejected",
                extra={"context": {"chat_id": payload.get("chat_id"), "description": body.get("description")}},
            )
        return body

    async def send_message(self, chat_id: int, text: str, reply_to_message_id: Optional[int] = None) -> dict:
        """Send ``text`` as a reply when a message id is given; the reply is kept if that message is gone."""
        payload: dict = {"chat_id": chat_id, "text": text}
        if reply_to_message_id:
            payload["reply_parameters"] = {"message_id": reply_to_message_id, "allow_sending_without_reply": True}
        return await self._call("sendMessage", payload)

    async def send_chat_action(self, chat_id: int, action: str = "typing") -> dict:
        return await self._call("sendChatAction", {"chat_id": chat_id, "action": action})
