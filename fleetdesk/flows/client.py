"""Add-client wizard."""
from fleetdesk.flows import validators
from fleetdesk.flows.engine import FlowContext, FlowDefinition, State, Step
from fleetdesk.models.results import ActionResult
from fleetdesk.models.tools import CreateClientArgs


def summary(state: State) -> str:
    lines = [
        "📋 *New Client*",
        f"Company: {state['company_name']}",
        f"Contact: {state['contact_person']}",
        f"Email: {state['email']}",
        f"Phone: {state['phone']}",
        f"Address: {state['address']}",
    ]
    if state.get("cac_number"):
        lines.append(f"CAC: {state['cac_number']}")
    if state.get("tin"):
        lines.append(f"TIN: {state['tin']}")
    return "\n".join(lines)


async def commit(state: State, ctx: FlowContext) -> ActionResult:
    return await ctx.executor.create_client(
        ctx.tenant_id, CreateClientArgs.model_validate(state), ctx.idempotency_key("create_client")
    )


def on_success(result: ActionResult, state: State) -> str:
    return f"✅ {result.data['companyName']} added to your clients.\n\nType *create invoice* to bill them."


def build() -> FlowDefinition:
    return FlowDefinition(
        flow_id="client",
        title="client",
        intro="👥 Let's add a new client.",
        steps=[
            Step("company_name", "What is the client's company name?", validators.text_value(2, "Company name")),
            Step("contact_person", "Who is the contact person?", validators.text_value(2, "Contact name")),
            Step("email", "What is their email address?", validators.email),
            Step("phone", "What is their phone number?", validators.phone),
            Step(
                "cac_number",
                "CAC registration number? (type *skip* if you don't have it)",
                validators.optional_text("CAC number", r"(?i)(RC|BN)?\s?\d{4,8}", "Example: RC123456"),
            ),
            Step(
                "tin",
                "Tax ID (TIN)? (type *skip* if you don't have it)",
                validators.optional_text("TIN", r"\d{8,14}(-\d{4})?", "Use digits only"),
            ),
            Step("address", "What is their business address?", validators.text_value(3, "Address")),
        ],
        commit=commit,
        on_success=on_success,
        summary=summary,
        input_model=CreateClientArgs,
    )
