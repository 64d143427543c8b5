"""Client for the external WhatsApp API used to send payment reminders."""
from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

import config
from gamerun.services.errors import MessagingError, WorkflowError

logger = logging.getLogger("gamerun.whatsapp")

STATUS_MESSAGES = {
    503: "WhatsApp is not connected. Connect it before sending messages.",
    400: "Invalid data. Check the number and the message.",
    401: "Invalid token or missing permission.",
    403: "Invalid token or missing permission.",
}


def normalize_number(number: str) -> str:
    """Digits only; Brazilian numbers without country code get 55 prepended."""
    digits = "".join(ch for ch in (number or "") if ch.isdigit())
    if len(digits) in (10, 11):
        digits = "55" + digits
    return digits


class WhatsAppService:
    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.base_url = (base_url if base_url is not None else config.WHATSAPP_API_URL).rstrip("/")
        self.token = token if token is not None else config.WHATSAPP_API_TOKEN
        self._transport = transport
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}", "Content-Type": "application/json"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if not self.base_url:
            raise MessagingError("WhatsApp integration not configured")
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self._timeout, transport=self._transport
            ) as client:
                return await client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            logger.exception("WhatsApp API request %s %s failed", method, path)
            raise MessagingError("Could not reach the WhatsApp API") from e

    async def get_status(self) -> dict[str, Any]:
        r = await self._request("GET", "/status")
        if r.status_code != 200:
            logger.warning("WhatsApp status returned %s", r.status_code)
            raise MessagingError("Failed to get WhatsApp status")
        data = r.json()
        return {"status": data.get("whatsapp", "disconnected"), "last_update": data.get("timestamp")}

    async def send_message(self, number: str, message: str) -> dict[str, Any]:
        number = normalize_number(number)
        message = (message or "").strip()
        if not number or not message:
            raise WorkflowError("Phone number and message are required")
        r = await self._request("POST", "/send-message", json={"number": number, "message": message})
        if r.status_code in STATUS_MESSAGES:
            logger.warning("WhatsApp send-message returned %s", r.status_code)
            raise MessagingError(STATUS_MESSAGES[r.status_code])
        if r.is_error:
            logger.warning("WhatsApp send-message returned %s: %s", r.status_code, r.text)
            raise MessagingError("Failed to send message")
        logger.info("WhatsApp message sent to %s", number)
        return r.json()
