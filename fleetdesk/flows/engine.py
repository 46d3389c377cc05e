"""
Generic wizard state machine.

A flow is an ordered list of steps followed by a commit. The engine owns all
control flow; flow modules only declare steps, prompts, validators and the
commit operation.

    COLLECTING(i) --valid--> COLLECTING(i+1) ... --> CONFIRMING --yes--> EXECUTING --> IDLE
         |                                              |
         +--invalid: re-prompt, state untouched          +--no: discard, IDLE
"""
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from fleetdesk.core.exceptions import FlowStateError, ValidationException
from fleetdesk.core.logging import get_logger, log_business_event
from fleetdesk.models.results import ActionResult
from fleetdesk.models.session import Session, SessionPhase

logger = get_logger(__name__)

AFFIRMATIVE = frozenset({"yes", "y", "confirm", "ok", "okay", "1", "sure", "proceed"})
NEGATIVE = frozenset({"no", "n", "cancel", "2", "stop", "discard"})

State = Dict[str, Any]
Prompt = Union[str, Callable[[State], str]]


@dataclass
class FlowContext:
    """Per-turn collaborators and identity handed to validators and commits."""
    canonical: str
    executor: Any
    tenant_id: Optional[str] = None
    language: str = "en"
    contact_name: Optional[str] = None
    message_id: Optional[str] = None

    def idempotency_key(self, operation: str) -> Optional[str]:
        if not self.message_id:
            return None
        return f"{self.canonical}:{self.message_id}:{operation}"


@dataclass
class StepResult:
    """
    Outcome of feeding one input to a step.

    ``accepted`` with ``advance=False`` keeps the cursor on the same step
    (multi-entry steps). A rejected result normally leaves state untouched;
    ``state`` is only honoured on rejection by steps that must reset their
    own provisional values.
    """
    accepted: bool
    state: Optional[State] = None
    message: Optional[str] = None
    advance: bool = True


@dataclass
class Step:
    key: str
    prompt: Prompt
    validate: Callable[..., Any]
    on_accept: Optional[Callable[[State, Any], State]] = None
    when: Optional[Callable[[State], bool]] = None

    def render_prompt(self, state: State) -> str:
        return self.prompt(state) if callable(self.prompt) else self.prompt

    def applies(self, state: State) -> bool:
        return self.when is None or self.when(state)

    def accept(self, state: State, value: Any) -> State:
        if self.on_accept is not None:
            return self.on_accept(dict(state), value)
        if isinstance(value, dict):
            return {**state, **value}
        return {**state, self.key: value}

    async def consume(self, text: str, state: State, ctx: FlowContext) -> StepResult:
        try:
            value = self.validate(text, ctx, state)
            if inspect.isawaitable(value):
                value = await value
        except ValidationException as e:
            return StepResult(accepted=False, message=f"⚠️ {e.detail}\n\n{self.render_prompt(state)}")
        return StepResult(accepted=True, state=self.accept(state, value))


@dataclass
class FlowDefinition:
    flow_id: str
    title: str
    steps: List[Step]
    commit: Callable[[State, FlowContext], Awaitable[ActionResult]]
    on_success: Callable[[ActionResult, State], str]
    intro: Optional[str] = None
    summary: Optional[Callable[[State], str]] = None
    input_model: Optional[type] = None
    follow_up: Optional[Callable[[State], Optional[str]]] = None
    carry_over: Optional[Callable[[State], State]] = None


class FlowEngine:
    """Drives any FlowDefinition one user turn at a time."""

    def __init__(self, flows: Dict[str, FlowDefinition]):
        self.flows = flows

    def get(self, flow_id: Optional[str]) -> FlowDefinition:
        if flow_id not in self.flows:
            raise FlowStateError("Unknown flow", flow_id=flow_id)
        return self.flows[flow_id]

    def _next_cursor(self, flow: FlowDefinition, start: int, state: State) -> int:
        cursor = start
        while cursor < len(flow.steps) and not flow.steps[cursor].applies(state):
            cursor += 1
        return cursor

    def current_step(self, session: Session) -> Optional[Step]:
        flow = self.get(session.active_flow)
        if session.phase != SessionPhase.COLLECTING or session.step_cursor >= len(flow.steps):
            return None
        return flow.steps[session.step_cursor]

    def start(self, session: Session, flow_id: str, initial: Optional[State] = None) -> str:
        """Enter ``flow_id`` at its first applicable step and return the opening prompt."""
        flow = self.get(flow_id)
        session.active_flow = flow_id
        session.phase = SessionPhase.COLLECTING
        session.collected_fields = dict(initial or {})
        session.step_cursor = self._next_cursor(flow, 0, session.collected_fields)

        log_business_event("flow_started", flow=flow_id)
        prompt = flow.steps[session.step_cursor].render_prompt(session.collected_fields)
        return f"{flow.intro}\n\n{prompt}" if flow.intro else prompt

    def cancel(self, session: Session) -> None:
        if session.active_flow:
            log_business_event("flow_cancelled", flow=session.active_flow, step_cursor=session.step_cursor)
        session.clear_flow()

    async def handle(self, session: Session, text: str, ctx: FlowContext) -> str:
        """Consume one user turn for the active flow and return the reply."""
        flow = self.get(session.active_flow)
        text = (text or "").strip()

        if session.phase == SessionPhase.EXECUTING:
            # A previous commit never finished; never replay it implicitly
            logger.warning("Found flow stuck in EXECUTING, resetting", flow=flow.flow_id)
            session.clear_flow()
            return f"Your last {flow.title} request was interrupted. Please start it again."

        if session.phase == SessionPhase.CONFIRMING:
            return await self._handle_confirmation(session, flow, text, ctx)

        if session.phase != SessionPhase.COLLECTING:
            raise FlowStateError(f"Unexpected phase {session.phase}", flow_id=flow.flow_id)

        cursor = self._next_cursor(flow, session.step_cursor, session.collected_fields)
        if cursor >= len(flow.steps):
            raise FlowStateError("Cursor past last step while collecting", flow_id=flow.flow_id)
        step = flow.steps[cursor]

        result = await step.consume(text, dict(session.collected_fields), ctx)
        if not result.accepted:
            if result.state is not None:
                session.collected_fields = result.state
            session.step_cursor = cursor
            return result.message or step.render_prompt(session.collected_fields)

        session.collected_fields = result.state
        if not result.advance:
            session.step_cursor = cursor
            return result.message or step.render_prompt(session.collected_fields)

        session.step_cursor = self._next_cursor(flow, cursor + 1, session.collected_fields)
        if session.step_cursor < len(flow.steps):
            next_prompt = flow.steps[session.step_cursor].render_prompt(session.collected_fields)
            return f"{result.message}\n\n{next_prompt}" if result.message else next_prompt

        if flow.summary is not None:
            session.phase = SessionPhase.CONFIRMING
            return self._confirmation_prompt(flow, session.collected_fields)

        return await self._commit(session, flow, ctx)

    def _confirmation_prompt(self, flow: FlowDefinition, state: State) -> str:
        return f"{flow.summary(state)}\n\nReply *YES* to confirm or *NO* to cancel."

    async def _handle_confirmation(self, session: Session, flow: FlowDefinition, text: str, ctx: FlowContext) -> str:
        answer = text.lower()
        if answer in AFFIRMATIVE:
            return await self._commit(session, flow, ctx)
        if answer in NEGATIVE:
            self.cancel(session)
            return f"❌ {flow.title} cancelled. Nothing was saved."
        return f"Please reply *YES* or *NO*.\n\n{self._confirmation_prompt(flow, session.collected_fields)}"

    async def _commit(self, session: Session, flow: FlowDefinition, ctx: FlowContext) -> str:
        """
        Run the flow's commit once.

        Success or failure, the session returns to IDLE; a failed commit is
        never re-entered automatically.
        """
        session.phase = SessionPhase.EXECUTING
        state = dict(session.collected_fields)

        if flow.input_model is not None:
            try:
                flow.input_model.model_validate(state)
            except PydanticValidationError as e:
                logger.error("Collected fields failed final validation", flow=flow.flow_id, errors=e.errors())
                session.clear_flow()
                return f"❌ Some {flow.title} details were invalid. Please start again."

        try:
            result = await flow.commit(state, ctx)
        except Exception as e:
            logger.error("Flow commit failed", flow=flow.flow_id, error=str(e), exc_info=True)
            session.clear_flow()
            return f"❌ I couldn't save your {flow.title}. Please try again later."

        session.clear_flow()
        if not result.success:
            log_business_event("flow_commit_rejected", flow=flow.flow_id, error_code=result.error_code)
            reply = f"❌ {result.error}"
            if result.candidates:
                reply += "\nDid you mean: " + ", ".join(result.candidates)
            return reply + "\n\nYou can start again whenever you're ready."

        log_business_event("flow_completed", flow=flow.flow_id)
        reply = flow.on_success(result, state)

        next_flow = flow.follow_up(state) if flow.follow_up else None
        if next_flow:
            carried = flow.carry_over(state) if flow.carry_over else {}
            reply += "\n\n" + self.start(session, next_flow, initial=carried)
        return reply
