"""Add-vehicle wizard."""
from fleetdesk.core.exceptions import ValidationException
from fleetdesk.flows import validators
from fleetdesk.flows.engine import FlowContext, FlowDefinition, State, Step
from fleetdesk.models.results import ActionResult
from fleetdesk.models.tools import CreateVehicleArgs

MIN_YEAR = 1980


def year(text, ctx=None, state=None) -> int:
    latest = (ctx.executor.today().year if ctx is not None else MIN_YEAR) + 1
    try:
        value = int((text or "").strip())
    except ValueError:
        raise ValidationException("Year must be a number like 2019", field="year")
    if not MIN_YEAR <= value <= latest:
        raise ValidationException(f"Year must be between {MIN_YEAR} and {latest}", field="year")
    return value


def plate(text, ctx=None, state=None) -> str:
    return validators.min_length(text, 3, "Plate number").upper()


def vin(text, ctx=None, state=None):
    return validators.optional_text(
        "VIN", r"[A-HJ-NPR-Z0-9]{11,17}", "VINs are 11-17 letters and digits."
    )((text or "").strip().upper())


def summary(state: State) -> str:
    lines = [
        "🚛 *New Vehicle*",
        f"{state['year']} {state['make']} {state['model']}",
        f"Plate: {state['plate_number']}",
    ]
    if state.get("vin"):
        lines.append(f"VIN: {state['vin']}")
    lines.append(f"Odometer: {state.get('odometer', 0):,.0f} km")
    return "\n".join(lines)


async def commit(state: State, ctx: FlowContext) -> ActionResult:
    return await ctx.executor.create_vehicle(
        ctx.tenant_id, CreateVehicleArgs.model_validate(state), ctx.idempotency_key("create_vehicle")
    )


def on_success(result: ActionResult, state: State) -> str:
    return f"✅ Vehicle {result.data['plateNumber']} added to your fleet."


def build() -> FlowDefinition:
    return FlowDefinition(
        flow_id="vehicle",
        title="vehicle",
        intro="🚛 Let's add a vehicle.",
        steps=[
            Step("make", "What is the vehicle make? (e.g. Toyota)", validators.text_value(2, "Make")),
            Step("model", "And the model? (e.g. Hiace)", validators.text_value(1, "Model")),
            Step("year", "What year was it manufactured?", year),
            Step("plate_number", "Plate number?", plate),
            Step("vin", "VIN / chassis number? Type *skip* to leave it out.", vin),
            Step("odometer", "Current odometer reading in km? (0 if unknown)",
                 validators.positive_number("Odometer", allow_zero=True)),
        ],
        commit=commit,
        on_success=on_success,
        summary=summary,
        input_model=CreateVehicleArgs,
    )
