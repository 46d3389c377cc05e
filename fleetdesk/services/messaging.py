"""
Messaging channel client (WhatsApp Cloud API): outbound sends, read receipts
and media downloads.
"""
from typing import Any, Dict, List, Literal, Optional, Tuple

import httpx
import structlog
from pydantic import BaseModel, Field

from fleetdesk.core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from fleetdesk.core.config import Settings, get_settings
from fleetdesk.core.exceptions import ServiceUnavailableError
from fleetdesk.core.logging import mask_address

logger = structlog.get_logger(__name__)

MAX_BUTTONS = 3
MAX_TEXT_LENGTH = 4096


class ReplyButton(BaseModel):
    id: str
    title: str = Field(max_length=20)


class ListRow(BaseModel):
    id: str
    title: str = Field(max_length=24)
    description: Optional[str] = None


class OutboundMessage(BaseModel):
    """What the conversation layer produces; formatting for the wire happens here."""
    type: Literal["text", "button", "list", "document", "image"] = "text"
    body: str
    buttons: List[ReplyButton] = Field(default_factory=list)
    list_button: Optional[str] = None
    rows: List[ListRow] = Field(default_factory=list)
    link: Optional[str] = None
    filename: Optional[str] = None

    @classmethod
    def text(cls, body: str) -> "OutboundMessage":
        return cls(type="text", body=body)


class MessagingClient:
    """Client for the messaging channel's Graph API."""

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.service_name = "WhatsApp"
        self.base_url = f"{settings.whatsapp_api_base_url.rstrip('/')}/{settings.whatsapp_api_version}"
        self.phone_number_id = settings.whatsapp_phone_number_id
        self.access_token = settings.whatsapp_access_token
        self.timeout = settings.whatsapp_timeout_seconds
        self.circuit_breaker = CircuitBreaker(
            service_name=self.service_name,
            config=CircuitBreakerConfig(
                failure_threshold=settings.circuit_breaker_failure_threshold,
                timeout=settings.circuit_breaker_timeout_seconds,
            ),
        )

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    @property
    def _messages_url(self) -> str:
        return f"{self.base_url}/{self.phone_number_id}/messages"

    def build_payload(self, to: str, message: OutboundMessage) -> Dict[str, Any]:
        """Translate an OutboundMessage into the channel's JSON body."""
        payload: Dict[str, Any] = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to.lstrip("+"),
        }
        body = message.body[:MAX_TEXT_LENGTH]

        if message.type == "button" and message.buttons:
            payload["type"] = "interactive"
            payload["interactive"] = {
                "type": "button",
                "body": {"text": body},
                "action": {
                    "buttons": [
                        {"type": "reply", "reply": {"id": b.id, "title": b.title}}
                        for b in message.buttons[:MAX_BUTTONS]
                    ]
                },
            }
        elif message.type == "list" and message.rows:
            payload["type"] = "interactive"
            payload["interactive"] = {
                "type": "list",
                "body": {"text": body},
                "action": {
                    "button": message.list_button or "Options",
                    "sections": [{"title": "Options", "rows": [r.model_dump(exclude_none=True) for r in message.rows]}],
                },
            }
        elif message.type in ("document", "image") and message.link:
            media: Dict[str, Any] = {"link": message.link, "caption": body}
            if message.type == "document" and message.filename:
                media["filename"] = message.filename
            payload["type"] = message.type
            payload[message.type] = media
        else:
            payload["type"] = "text"
            payload["text"] = {"preview_url": False, "body": body}

        return payload

    async def send(self, to: str, message: OutboundMessage) -> Optional[str]:
        """
        Deliver a message.

        Returns:
            Channel message id, if the API returned one

        Raises:
            ServiceUnavailableError: If the channel is unavailable or the circuit is open
        """
        payload = self.build_payload(to, message)
        return await self.circuit_breaker.call_async(self._post_message, to, payload)

    async def send_text(self, to: str, body: str) -> Optional[str]:
        return await self.send(to, OutboundMessage.text(body))

    async def _post_message(self, to: str, payload: Dict[str, Any]) -> Optional[str]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self._messages_url, json=payload, headers=self._headers)
                response.raise_for_status()
                data = response.json()

        except httpx.TimeoutException as e:
            logger.error("Timeout sending message", service=self.service_name, to=mask_address(to), error=str(e))
            raise ServiceUnavailableError(self.service_name, f"Request timeout after {self.timeout} seconds")

        except httpx.ConnectError as e:
            logger.error("Connection error to messaging channel", to=mask_address(to), error=str(e))
            raise ServiceUnavailableError(self.service_name, f"Connection error: {str(e)}")

        except httpx.HTTPStatusError as e:
            logger.error("HTTP error from messaging channel", to=mask_address(to),
                         status_code=e.response.status_code, error=str(e))
            if e.response.status_code >= 500:
                raise ServiceUnavailableError(self.service_name, f"Server error: {e.response.status_code}")
            raise

        messages = data.get("messages") or []
        message_id = messages[0].get("id") if messages else None
        logger.info("Message sent", service=self.service_name, to=mask_address(to),
                    message_type=payload.get("type"), message_id=message_id)
        return message_id

    async def mark_as_read(self, message_id: str) -> bool:
        """Best-effort read receipt; failures are logged and reported as False."""
        payload = {"messaging_product": "whatsapp", "status": "read", "message_id": message_id}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self._messages_url, json=payload, headers=self._headers)
                response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.warning("Failed to mark message as read", message_id=message_id, error=str(e))
            return False

    async def download_media(self, media_id: str) -> Tuple[bytes, Optional[str]]:
        """
        Fetch media content in two steps: resolve the media URL, then download it.

        Raises:
            ServiceUnavailableError: On timeouts, connection failures and 5xx responses
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                meta_response = await client.get(f"{self.base_url}/{media_id}", headers=self._headers)
                meta_response.raise_for_status()
                meta = meta_response.json()

                media_response = await client.get(meta["url"], headers=self._headers)
                media_response.raise_for_status()

        except httpx.TimeoutException:
            raise ServiceUnavailableError(self.service_name, "Media download timed out")

        except httpx.ConnectError as e:
            raise ServiceUnavailableError(self.service_name, f"Connection error: {str(e)}")

        except httpx.HTTPStatusError as e:
            logger.error("HTTP error downloading media", media_id=media_id, status_code=e.response.status_code)
            if e.response.status_code >= 500:
                raise ServiceUnavailableError(self.service_name, f"Server error: {e.response.status_code}")
            raise

        return media_response.content, meta.get("mime_type")
