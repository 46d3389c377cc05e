"""Add-driver wizard."""
from fleetdesk.flows import validators
from fleetdesk.flows.engine import FlowContext, FlowDefinition, State, Step
from fleetdesk.models.results import ActionResult
from fleetdesk.models.tools import CreateDriverArgs
from fleetdesk.utils.money import format_naira


def summary(state: State) -> str:
    lines = [
        "🚚 *New Driver*",
        f"Name: {state['name']}",
        f"Phone: {state['phone']}",
        f"Licence: {state['license_number'].upper()}",
        f"NIN: {state['nin']}",
        f"Salary: {format_naira(state['annual_salary'])}/year",
        f"Account: {state['account_number']}",
    ]
    return "\n".join(lines)


async def commit(state: State, ctx: FlowContext) -> ActionResult:
    return await ctx.executor.create_driver(
        ctx.tenant_id, CreateDriverArgs.model_validate(state), ctx.idempotency_key("create_driver")
    )


def on_success(result: ActionResult, state: State) -> str:
    return (
        f"✅ Driver {result.data['name']} registered.\n\n"
        "Assign them by asking e.g. \"assign route RTE-... to "
        f"{result.data['name'].split()[0]} with plate ABC-123XY\"."
    )


def build() -> FlowDefinition:
    return FlowDefinition(
        flow_id="driver",
        title="driver",
        intro="🚚 Let's register a driver.",
        steps=[
            Step("name", "What is the driver's full name?", validators.text_value(2, "Name")),
            Step("phone", "What is the driver's phone number?", validators.phone),
            Step("license_number", "What is their driver's licence number?", validators.text_value(3, "Licence number")),
            Step("nin", "National Identification Number (11 digits)?", validators.digits(11, "NIN")),
            Step("annual_salary", "Annual salary in Naira?", validators.positive_number("Salary")),
            Step("account_number", "Salary account number (10 digits)?", validators.digits(10, "Account number")),
        ],
        commit=commit,
        on_success=on_success,
        summary=summary,
        input_model=CreateDriverArgs,
    )
