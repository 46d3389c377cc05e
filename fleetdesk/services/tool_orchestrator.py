"""Bounded tool-calling loop between the reasoning service and ActionExecutor."""

import json
from collections import Counter
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from fleetdesk.core.config import Settings, get_settings
from fleetdesk.core.exceptions import (
    BusinessRuleException,
    DocumentStoreError,
    ReasoningServiceError,
    ServiceUnavailableError,
    ValidationException,
)
from fleetdesk.core.logging import get_logger, log_business_event
from fleetdesk.flows.engine import FlowContext
from fleetdesk.models.session import Session, Turn, TurnRole
from fleetdesk.models.tools import MUTATING_TOOLS, TOOL_MODELS, build_tool_schemas, parse_tool_arguments
from fleetdesk.services.action_executor import ActionExecutor
from fleetdesk.services.reasoning import ReasoningClient, RequestedToolCall
from fleetdesk.utils.language import apology

logger = get_logger(__name__)

LANGUAGE_NAMES = {
    "en": "English",
    "pidgin": "Nigerian Pidgin",
    "yo": "Yoruba",
    "ha": "Hausa",
    "ig": "Igbo",
}


class ToolOrchestrator:
    """
    Runs one user turn through the reasoning service.

    Each iteration either yields final text or a batch of tool calls. Calls
    in a batch execute sequentially, in the order requested, and every result
    is returned under its ``tool_call_id`` before the next request.
    """

    def __init__(
        self,
        reasoning: ReasoningClient,
        executor: ActionExecutor,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        settings = settings or get_settings()
        self.reasoning = reasoning
        self.executor = executor
        self.max_iterations = settings.tool_loop_max_iterations
        self.history_window = settings.tool_history_window
        self.max_turns = settings.history_max_turns
        self.keep_turns = settings.history_keep_turns
        self.tools = build_tool_schemas()
        self._clock = clock or datetime.utcnow

    async def converse(
        self,
        session: Session,
        text: str,
        ctx: FlowContext,
        tenant_name: Optional[str] = None,
    ) -> str:
        """Answer ``text`` for the tenant in ``ctx``; failures come back as the apology."""
        messages = [{"role": "system", "content": self._build_system_prompt(tenant_name, ctx.language)}]
        messages.extend(self._format_history(session))
        messages.append({"role": "user", "content": text})

        calls_per_tool: Counter = Counter()
        try:
            for _ in range(self.max_iterations):
                reply = await self.reasoning.complete(messages, tools=self.tools)
                if not reply.wants_tools:
                    return reply.text or apology(ctx.language)

                messages.append(reply.as_assistant_message())
                for call in reply.tool_calls:
                    calls_per_tool[call.name] += 1
                    payload = await self.run_tool(call, ctx, calls_per_tool[call.name])
                    messages.append({
                        "role": "tool",
                        "tool_call_id": call.id,
                        "content": json.dumps(payload, default=str),
                    })

            logger.warning("Tool loop iteration cap reached", max_iterations=self.max_iterations,
                           tools_called=dict(calls_per_tool))
            final = await self.reasoning.complete(messages, tools=self.tools, tool_choice="none")
            return final.text or apology(ctx.language)

        except ReasoningServiceError as e:
            logger.error("Reasoning service failed during conversation", error=str(e))
            return apology(ctx.language)

    async def run_tool(self, call: RequestedToolCall, ctx: FlowContext, occurrence: int = 1) -> Dict[str, Any]:
        """Validate and execute one tool call, always returning a serializable payload."""
        if call.name not in TOOL_MODELS:
            logger.warning("Reasoning service requested unknown tool", tool=call.name)
            return {"error": "unknown_tool", "tool": call.name}

        try:
            args = parse_tool_arguments(call.name, call.arguments())
        except PydanticValidationError as e:
            logger.warning("Tool arguments failed validation", tool=call.name, errors=e.error_count())
            return {
                "error": "invalid_arguments",
                "details": [
                    {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                    for err in e.errors(include_url=False)
                ],
            }
        except ValueError as e:
            logger.warning("Tool arguments were not valid JSON", tool=call.name, error=str(e))
            return {"error": "invalid_arguments", "details": str(e)}

        mutating = call.name in MUTATING_TOOLS
        idempotency_key = ctx.idempotency_key(f"{call.name}:{occurrence}") if mutating else None
        try:
            result = await self.executor.execute(ctx.tenant_id, args, idempotency_key=idempotency_key)
        except (ValidationException, BusinessRuleException) as e:
            logger.warning("Tool execution rejected", tool=call.name, error=e.detail)
            return {"error": "execution_failed", "tool": call.name, "details": e.detail}
        except (DocumentStoreError, ServiceUnavailableError, httpx.HTTPError, ValueError) as e:
            logger.error("Tool execution failed", tool=call.name, error=str(e))
            return {"error": "execution_failed", "tool": call.name}

        log_business_event("tool_executed", tool=call.name, mutating=mutating, success=result.success,
                           error_code=result.error_code)
        return result.to_tool_payload()

    async def compact_history(self, session: Session) -> None:
        """
        Fold older turns into ``session.summary`` once history reaches the cap.

        Keeps the newest ``keep_turns`` turns. If summarizing fails the older
        turns are dropped anyway.
        """
        if len(session.turn_history) < self.max_turns:
            return

        older = session.turn_history[:-self.keep_turns]
        session.turn_history = session.turn_history[-self.keep_turns:]
        transcript = "\n".join(f"{turn.role}: {turn.text}" for turn in older)
        try:
            session.summary = await self.reasoning.summarize(transcript, session.summary)
        except ReasoningServiceError as e:
            logger.warning("History summary failed, dropping older turns", error=str(e), dropped=len(older))

    def _build_system_prompt(self, tenant_name: Optional[str], language: str) -> str:
        """Build system prompt with tenant context."""
        today = self._clock().date().isoformat()
        language_name = LANGUAGE_NAMES.get(language, "English")

        return f"""You are FleetDesk, a supply-chain and fleet operations assistant for a Nigerian logistics business.

BUSINESS CONTEXT:
- Business: {tenant_name or "the user's business"}
- Today: {today}
- Currency: Naira (₦)

RULES:
1. Always use the tools to read or change business data. Never invent routes, drivers, vehicles, clients, invoices or amounts.
2. If a tool returns an error, explain it plainly and suggest what the user can do next.
3. When a name matches several records, list the candidates and ask which one.
4. Ask for missing details instead of guessing them.
5. Keep replies short and suitable for WhatsApp.
6. Reply in {language_name}."""

    def _format_history(self, session: Session) -> List[Dict[str, str]]:
        """Format the recent turns (and running summary) for the reasoning service."""
        messages: List[Dict[str, str]] = []
        if session.summary:
            messages.append({"role": "system", "content": f"Summary of earlier conversation:\n{session.summary}"})

        for turn in session.turn_history[-self.history_window:]:
            role = "user" if turn.role == TurnRole.USER else "assistant"
            if turn.text:
                messages.append({"role": role, "content": turn.text})
        return messages


def turn_pair(user_text: str, reply: str, now: Optional[datetime] = None) -> List[Turn]:
    now = now or datetime.utcnow()
    return [
        Turn(role=TurnRole.USER, text=user_text, timestamp=now),
        Turn(role=TurnRole.ASSISTANT, text=reply, timestamp=now),
    ]
