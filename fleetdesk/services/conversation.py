"""
Per-message glue between the channel, tenant resolution, sessions, wizards
and the tool loop.
"""
import re
from datetime import datetime
from typing import Callable, Optional, Tuple

import httpx

from fleetdesk.core.config import Settings, get_settings
from fleetdesk.core.exceptions import BusinessRuleException, ServiceUnavailableError, TranscriptionError
from fleetdesk.core.logging import (
    correlation_context,
    get_logger,
    log_business_event,
    mask_address,
)
from fleetdesk.flows.engine import FlowContext, FlowEngine
from fleetdesk.models.session import ResolvedTenant, Session, Unregistered
from fleetdesk.models.webhook import InboundMessage
from fleetdesk.services.action_executor import ActionExecutor
from fleetdesk.services.document_store import DocumentStore
from fleetdesk.services.messaging import MessagingClient
from fleetdesk.services.session_store import SessionStore
from fleetdesk.services.tenant_resolver import TenantResolver
from fleetdesk.services.tool_orchestrator import ToolOrchestrator, turn_pair
from fleetdesk.services.transcription import TranscriptionService
from fleetdesk.utils.language import apology, cancelled, detect_language, session_expired

logger = get_logger(__name__)

PROCESSED_MESSAGES = "processed_messages"
ONBOARDING = "onboarding"

CANCEL_WORDS = frozenset({"cancel", "stop", "exit", "quit"})
HELP_WORDS = frozenset({"help", "menu"})
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

COMMANDS = (
    (("add client", "new client"), "client"),
    (("add driver", "new driver"), "driver"),
    (("add vehicle", "new vehicle"), "vehicle"),
    (("create route", "new route"), "route"),
    (("create invoice", "new invoice"), "invoice"),
    (("invoice profile", "setup invoice"), "invoice_profile"),
)

REGISTERED_HELP = """📋 *FleetDesk Menu*

Start a guided form:
• *add client*
• *add driver*
• *add vehicle*
• *create route*
• *create invoice*
• *invoice profile*

Or just ask, for example:
• "show pending routes"
• "which drivers are idle?"
• "how much did we make this month?"
• "what's my wallet balance?"

Type *cancel* to stop a form at any time."""

UNREGISTERED_HELP = """👋 *Welcome to FleetDesk*

I help logistics businesses manage routes, drivers, vehicles and invoices on WhatsApp.

• Send any message to create your account.
• Already have a dashboard account? Send your account email to link this number."""


def match_command(text: str) -> Optional[str]:
    lowered = text.strip().lower()
    for phrases, flow_id in COMMANDS:
        if any(lowered == phrase or lowered.startswith(phrase + " ") for phrase in phrases):
            return flow_id
    return None


class ConversationService:
    """Handles one inbound channel message end to end."""

    def __init__(
        self,
        store: DocumentStore,
        resolver: TenantResolver,
        sessions: SessionStore,
        flows: FlowEngine,
        orchestrator: ToolOrchestrator,
        executor: ActionExecutor,
        messaging: MessagingClient,
        transcription: TranscriptionService,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.resolver = resolver
        self.sessions = sessions
        self.flows = flows
        self.orchestrator = orchestrator
        self.executor = executor
        self.messaging = messaging
        self.transcription = transcription
        self.settings = settings or get_settings()
        self._clock = clock or datetime.utcnow

    async def handle_message(self, message: InboundMessage, contact_name: Optional[str] = None) -> Optional[str]:
        """
        Process one inbound message and send the reply.

        Returns the reply text that was sent, or None when the message was a
        duplicate delivery or produced no reply.
        """
        with correlation_context(correlation_id=message.id):
            language = "en"
            canonical = None
            try:
                canonical = self.resolver.canonicalize(message.sender)
                await self.messaging.mark_as_read(message.id)

                if not await self._claim(message, canonical):
                    logger.info("Duplicate delivery ignored", message_id=message.id)
                    return None

                text, direct_reply = await self._extract_text(message)
                if direct_reply is not None:
                    await self._send(canonical, direct_reply)
                    return direct_reply

                resolved = await self.resolver.resolve(canonical)
                if isinstance(resolved, Unregistered):
                    reply = await self._handle_unregistered(resolved, text, message, contact_name)
                else:
                    reply, language = await self._handle_registered(resolved, text, message, contact_name)

                if reply:
                    await self._send(canonical, reply)
                return reply

            except Exception as e:
                logger.error("Failed to handle message", message_id=message.id,
                             phone=mask_address(canonical or message.sender), error=str(e), exc_info=True)
                if canonical is not None:
                    await self._send(canonical, apology(language))
                return None

    async def _claim(self, message: InboundMessage, canonical: str) -> bool:
        """Record the message id; False if it was already recorded.

        The check and the write run under the sender's session lock so two
        concurrent deliveries of one message cannot both claim it.
        """
        async with self.sessions.lock_for(canonical):
            if await self.store.get(PROCESSED_MESSAGES, message.id) is not None:
                return False
            await self.store.set(PROCESSED_MESSAGES, message.id, {
                "phoneNumber": canonical,
                "type": message.type,
                "processedAt": self._clock().isoformat(),
            })
        return True

    async def _extract_text(self, message: InboundMessage) -> Tuple[str, Optional[str]]:
        """
        Pull user text out of a message.

        Returns ``(text, direct_reply)``; a non-None ``direct_reply`` ends
        processing without touching sessions.
        """
        if message.type == "text" and message.text:
            return message.text.body.strip(), None

        if message.type == "interactive" and message.interactive:
            reply = message.interactive.button_reply or message.interactive.list_reply
            if reply:
                return (reply.id or reply.title or "").strip(), None

        if message.type == "button" and message.button:
            return (message.button.text or message.button.payload or "").strip(), None

        if message.type in ("audio", "voice"):
            media = message.audio or message.voice
            if media is None:
                return "", "I couldn't open that voice note. Please try again or type your message."
            try:
                text = await self.transcription.transcribe(media.id, media.mime_type)
            except TranscriptionError as e:
                logger.warning("Voice note transcription failed", message_id=message.id, error=str(e))
                return "", "🎤 Sorry, I couldn't understand that voice note. Please try again or type your message."
            log_business_event("voice_note_transcribed", message_id=message.id, length=len(text))
            return text, None

        if message.type == "image":
            return "", "📷 I received your image. I can't read images yet, so please describe what you need in text."

        if message.type == "document":
            return "", "📄 I received your document. Please tell me in text what you'd like me to do with it."

        if message.type == "location":
            place = (message.location.name or message.location.address) if message.location else None
            where = f" ({place})" if place else ""
            return "", f"📍 Thanks, I received your location{where}."

        logger.info("Unsupported message type", message_type=message.type)
        return "", "Sorry, I can only handle text and voice messages for now."

    async def _handle_unregistered(
        self,
        identity: Unregistered,
        text: str,
        message: InboundMessage,
        contact_name: Optional[str],
    ) -> str:
        canonical = identity.canonical
        async with self.sessions.transaction(canonical) as session:
            ctx = FlowContext(
                canonical=canonical,
                executor=self.executor,
                language=session.language,
                contact_name=contact_name,
                message_id=message.id,
            )
            lowered = text.lower()

            if session.active_flow == ONBOARDING and session.in_flow:
                if lowered in CANCEL_WORDS:
                    self.flows.cancel(session)
                    reply = cancelled(session.language)
                else:
                    reply = await self.flows.handle(session, text, ctx)
            elif lowered in HELP_WORDS:
                reply = UNREGISTERED_HELP
            elif EMAIL_PATTERN.match(lowered):
                reply = await self._link_by_email(canonical, lowered)
            else:
                reply = self.flows.start(session, ONBOARDING)
                if session.was_expired:
                    reply = f"{session_expired(session.language)}\n\n{reply}"

            await self.sessions.save(session, turn_pair(text, reply, self._clock()))
        log_business_event("unregistered_message", phone=mask_address(canonical), reason=identity.reason)
        return reply

    async def _link_by_email(self, canonical: str, email: str) -> str:
        user = await self.resolver.find_user_by_email(email)
        if user is None:
            return (
                f"I couldn't find an account for {email}.\n\n"
                "Send any other message to create a new FleetDesk account."
            )
        try:
            await self.resolver.bind(canonical, user["organizationId"], user["id"])
        except BusinessRuleException as e:
            logger.warning("Email link refused", phone=mask_address(canonical), error=e.detail)
            return "This number is already linked to a different account."
        log_business_event("number_linked_by_email", phone=mask_address(canonical),
                           organization_id=user["organizationId"])
        return "✅ This number is now linked to your FleetDesk account. Send *menu* to see what I can do."

    async def _handle_registered(
        self,
        identity: ResolvedTenant,
        text: str,
        message: InboundMessage,
        contact_name: Optional[str],
    ) -> Tuple[str, str]:
        async with self.sessions.transaction(identity.canonical) as session:
            session.user_id = identity.user_id
            session.tenant_id = identity.tenant_id
            session.language = detect_language(text, session.language)
            ctx = FlowContext(
                canonical=identity.canonical,
                executor=self.executor,
                tenant_id=identity.tenant_id,
                language=session.language,
                contact_name=contact_name,
                message_id=message.id,
            )

            with correlation_context(correlation_id=message.id, tenant_id=identity.tenant_id,
                                     user_id=identity.user_id):
                reply = await self._route(session, text, ctx)

            prefix = session_expired(session.language) if session.was_expired else None
            if prefix:
                reply = f"{prefix}\n\n{reply}"

            session.turn_history.extend(turn_pair(text, reply, self._clock()))
            await self.orchestrator.compact_history(session)
            await self.sessions.save(session)
            return reply, session.language

    async def _route(self, session: Session, text: str, ctx: FlowContext) -> str:
        lowered = text.strip().lower()

        if session.in_flow:
            if lowered in CANCEL_WORDS:
                self.flows.cancel(session)
                return cancelled(session.language)
            return await self.flows.handle(session, text, ctx)

        flow_id = match_command(lowered)
        if flow_id == "invoice" and await self.executor.get_invoice_profile(ctx.tenant_id) is None:
            return self.flows.start(session, "invoice_profile", initial={"return_to_invoice": True})
        if flow_id:
            return self.flows.start(session, flow_id)

        if lowered in HELP_WORDS:
            return REGISTERED_HELP

        if not text:
            return REGISTERED_HELP

        organization = await self.store.get("organizations", ctx.tenant_id)
        tenant_name = organization.get("name") if organization else None
        return await self.orchestrator.converse(session, text, ctx, tenant_name=tenant_name)

    async def _send(self, canonical: str, text: str) -> None:
        """Channel send failures are logged; there is nobody else to tell."""
        try:
            await self.messaging.send_text(canonical, text)
        except ServiceUnavailableError as e:
            logger.error("Reply not delivered", phone=mask_address(canonical), error=str(e.detail))
        except httpx.HTTPError as e:
            logger.error("Reply not delivered", phone=mask_address(canonical), error=str(e))
