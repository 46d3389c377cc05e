"""Sign-up wizard for unregistered numbers."""
import re

import bcrypt

from fleetdesk.core.config import get_settings
from fleetdesk.core.exceptions import ValidationException
from fleetdesk.flows import validators
from fleetdesk.flows.engine import FlowContext, FlowDefinition, State, Step, StepResult
from fleetdesk.models.flows import OnboardingInput
from fleetdesk.models.results import ActionResult

FLEET_SIZES = {"1": "1-5", "2": "6-10", "3": "11-20", "4": "21-50", "5": "50+"}

NIGERIAN_STATES = (
    "Abia", "Adamawa", "Akwa Ibom", "Anambra", "Bauchi", "Bayelsa", "Benue", "Borno",
    "Cross River", "Delta", "Ebonyi", "Edo", "Ekiti", "Enugu", "FCT", "Gombe", "Imo",
    "Jigawa", "Kaduna", "Kano", "Katsina", "Kebbi", "Kogi", "Kwara", "Lagos", "Nasarawa",
    "Niger", "Ogun", "Ondo", "Osun", "Oyo", "Plateau", "Rivers", "Sokoto", "Taraba",
    "Yobe", "Zamfara",
)
STATE_ALIASES = {"abuja": "FCT", "fct": "FCT", "f.c.t": "FCT", "f.c.t.": "FCT"}

ACCEPT_WORDS = frozenset({"accept", "yes", "1"})
PIN_PATTERN = re.compile(r"^\d{4}$")
PROVISIONAL_PIN = "pin_provisional_hash"


def personal_info(text, ctx=None, state=None) -> dict:
    first, last = validators.pipe_parts(text, 2, "First Name | Last Name")
    if len(first) < 2 or len(last) < 2:
        raise ValidationException("First and last name must each be at least 2 characters", field="name")
    return {"first_name": first.title(), "last_name": last.title()}


def company_info(text, ctx=None, state=None) -> dict:
    company, size = validators.pipe_parts(text, 2, "Company Name | Fleet Size Code")
    if len(company) < 2:
        raise ValidationException("Company name must be at least 2 characters", field="company_name")
    fleet_size = FLEET_SIZES.get(size) or (size if size in FLEET_SIZES.values() else None)
    if fleet_size is None:
        raise ValidationException("Fleet size code must be a number from 1 to 5", field="fleet_size")
    return {"company_name": company, "fleet_size": fleet_size}


def normalize_state(value: str) -> str:
    lowered = value.strip().lower()
    if lowered in STATE_ALIASES:
        return STATE_ALIASES[lowered]
    titled = value.strip().title()
    if titled not in NIGERIAN_STATES:
        raise ValidationException(f"Invalid state. Please use one of: {', '.join(NIGERIAN_STATES)}", field="state")
    return titled


def address(text, ctx=None, state=None) -> dict:
    street, city, region = validators.pipe_parts(text, 3, "Street | City | State")
    if len(street) < 3:
        raise ValidationException("Street address is too short", field="street")
    return {"street": street, "city": city.title(), "state": normalize_state(region)}


class TermsStep(Step):
    """ACCEPT moves on; READ sends the terms link and waits."""

    async def consume(self, text: str, state: State, ctx: FlowContext) -> StepResult:
        answer = (text or "").strip().lower()
        if answer in ACCEPT_WORDS:
            return StepResult(accepted=True, state={**state, "terms_accepted": True})
        if answer == "read":
            return StepResult(
                accepted=False,
                message=f"Read our full Terms of Service here:\n\n{get_settings().terms_url}\n\n"
                        "When ready, type *ACCEPT* to continue.",
            )
        return StepResult(accepted=False, message="⚠️ Please type *ACCEPT* to continue or *READ* for the full terms.")


class PinStep(Step):
    """
    Set-then-confirm PIN pair inside one step.

    First entry is hashed and held provisionally; a matching second entry
    completes the step. A mismatch drops the provisional hash and restarts
    the pair, not the flow.
    """

    async def consume(self, text: str, state: State, ctx: FlowContext) -> StepResult:
        pin = (text or "").strip()
        if not PIN_PATTERN.match(pin):
            return StepResult(accepted=False, message=f"⚠️ PIN must be exactly 4 digits.\n\n{self.render_prompt(state)}")

        provisional = state.get(PROVISIONAL_PIN)
        if not provisional:
            hashed = bcrypt.hashpw(pin.encode(), bcrypt.gensalt()).decode()
            return StepResult(accepted=True, advance=False, state={**state, PROVISIONAL_PIN: hashed})

        remaining = {k: v for k, v in state.items() if k != PROVISIONAL_PIN}
        if bcrypt.checkpw(pin.encode(), provisional.encode()):
            return StepResult(accepted=True, state={**remaining, "pin_hash": provisional})

        return StepResult(
            accepted=False,
            state=remaining,
            message=f"❌ The PINs didn't match. Let's set it again.\n\n{self.render_prompt(remaining)}",
        )


def pin_prompt(state: State) -> str:
    if state.get(PROVISIONAL_PIN):
        return "🔐 *Confirm Your PIN*\n\nPlease enter your 4-digit PIN again to confirm."
    return (
        "🔐 *Set Transaction PIN*\n\n"
        "Choose a 4-digit PIN. You'll use it to approve payments.\n\n"
        "⚠️ Keep this PIN secure!"
    )


async def commit(state: State, ctx: FlowContext) -> ActionResult:
    return await ctx.executor.register_organization(
        ctx.canonical, OnboardingInput.model_validate(state), ctx.contact_name
    )


def on_success(result: ActionResult, state: State) -> str:
    settings = get_settings()
    return (
        f"✅ *Account Setup Complete!*\n\n"
        f"Welcome, {state['first_name']}! {state['company_name']} is ready.\n"
        f"Your free trial runs until {result.data['trialEndsAt']}.\n\n"
        f"Dashboard: {settings.dashboard_url}\n"
        f"Login: your phone number\n"
        f"Temporary password: {result.data['password']}\n\n"
        "What would you like to do first?\n"
        "• *add driver*\n• *add vehicle*\n• *add client*\n• *create route*\n\n"
        "Or just ask me anything about your business."
    )


def build() -> FlowDefinition:
    return FlowDefinition(
        flow_id="onboarding",
        title="registration",
        intro=(
            "Hey! 👋 Welcome to FleetDesk!\n\n"
            "I'll help you set up your logistics business in a few quick steps. "
            "Type *cancel* at any time to stop."
        ),
        steps=[
            Step(
                key="personal_info",
                prompt="📝 *Personal Information*\n\nPlease send your first and last name:\n\n"
                       "John | Doe\n\n(Separate with | symbol)",
                validate=personal_info,
            ),
            Step(
                key="company_info",
                prompt="🏢 *Company Information*\n\nSend your company name and fleet size code:\n\n"
                       "1 = 1-5 vehicles\n2 = 6-10\n3 = 11-20\n4 = 21-50\n5 = 50+\n\n"
                       "Example: Swift Logistics | 2",
                validate=company_info,
            ),
            Step(
                key="address",
                prompt="📍 *Business Address*\n\nStreet | City | State\n\n"
                       "Example: 12 Marina Road | Ikeja | Lagos",
                validate=address,
            ),
            TermsStep(
                key="terms",
                prompt="📜 *Terms & Privacy Policy*\n\nWe keep your business data private and never share it.\n\n"
                       "Type *ACCEPT* to agree and continue, or *READ* for the full terms.",
                validate=lambda text, ctx=None, state=None: text,
            ),
            PinStep(key="pin", prompt=pin_prompt, validate=lambda text, ctx=None, state=None: text),
        ],
        commit=commit,
        on_success=on_success,
        input_model=OnboardingInput,
    )
