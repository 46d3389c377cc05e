"""
Messaging channel webhook.

GET answers the channel's verification handshake. POST acknowledges the
event at once and hands each message to the conversation service as a
background task, so slow reasoning calls never delay the 200.
"""
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from fastapi.responses import PlainTextResponse

from fleetdesk.core.config import Settings, get_settings
from fleetdesk.core.dependencies import get_conversation_service
from fleetdesk.core.exceptions import UnsupportedEventSourceError, WebhookVerificationError
from fleetdesk.core.logging import get_logger, mask_address
from fleetdesk.models.webhook import WebhookEvent
from fleetdesk.services.conversation import ConversationService

router = APIRouter()
logger = get_logger(__name__)

CHANNEL_OBJECT = "whatsapp_business_account"


@router.get("/webhook", response_class=PlainTextResponse)
async def verify_webhook(
    hub_mode: Optional[str] = Query(None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(None, alias="hub.challenge"),
    settings: Settings = Depends(get_settings),
):
    """Echo ``hub.challenge`` when the verify token matches."""
    if hub_mode == "subscribe" and settings.whatsapp_verify_token and hub_verify_token == settings.whatsapp_verify_token:
        logger.info("Webhook verified")
        return PlainTextResponse(hub_challenge or "")

    logger.warning("Webhook verification failed", mode=hub_mode)
    raise WebhookVerificationError()


@router.post("/webhook")
async def receive_webhook(
    event: WebhookEvent,
    background_tasks: BackgroundTasks,
    conversation: ConversationService = Depends(get_conversation_service),
):
    """Acknowledge a channel event and schedule its messages."""
    if event.object != CHANNEL_OBJECT:
        raise UnsupportedEventSourceError(event.object)

    scheduled = 0
    for message, contact_name in event.iter_messages():
        logger.info("Inbound message queued", message_id=message.id, message_type=message.type,
                    sender=mask_address(message.sender))
        background_tasks.add_task(conversation.handle_message, message, contact_name)
        scheduled += 1

    return {"status": "ok", "messages": scheduled}
