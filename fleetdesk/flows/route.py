"""Create-route wizard."""
from fleetdesk.core.exceptions import ValidationException
from fleetdesk.flows import validators
from fleetdesk.flows.engine import FlowContext, FlowDefinition, State, Step
from fleetdesk.models.results import ActionResult
from fleetdesk.models.tools import CreateRouteArgs
from fleetdesk.utils.money import format_naira


async def client_name(text, ctx: FlowContext, state=None):
    """Optional; a named client must exist so the route can be invoiced later."""
    value = (text or "").strip()
    if value.lower() in validators.SKIP_WORDS:
        return {"client_name": None}
    lookup = await ctx.executor.find_by_name("clients", ctx.tenant_id, "companyName", value, "client")
    if not lookup.success:
        hint = f" Known clients: {', '.join(lookup.candidates)}." if lookup.candidates else ""
        raise ValidationException(f"{lookup.error}.{hint}", field="client_name")
    return {"client_name": lookup.data["companyName"]}


def summary(state: State) -> str:
    return "\n".join([
        "🗺️ *New Route*",
        f"From: {state['pickup_location']}",
        f"To: {state['delivery_location']}",
        f"Client: {state.get('client_name') or '-'}",
        f"Date: {state['date']}",
        f"Rate: {format_naira(state.get('rate', 0))}",
    ])


async def commit(state: State, ctx: FlowContext) -> ActionResult:
    return await ctx.executor.create_route(
        ctx.tenant_id, CreateRouteArgs.model_validate(state), ctx.idempotency_key("create_route")
    )


def on_success(result: ActionResult, state: State) -> str:
    return (
        f"✅ Route {result.data['id']} created ({result.data['status']}).\n\n"
        "Ask me to assign a driver and vehicle when you're ready."
    )


def build() -> FlowDefinition:
    return FlowDefinition(
        flow_id="route",
        title="route",
        intro="🗺️ Let's create a route.",
        steps=[
            Step("pickup_location", "Pickup location?", validators.text_value(2, "Pickup location")),
            Step("delivery_location", "Delivery location?", validators.text_value(2, "Delivery location")),
            Step("client_name", "Which client is this for? Type *skip* if none.", client_name),
            Step("date", "Date of the trip? (YYYY-MM-DD, *today* or *tomorrow*)", validators.route_date),
            Step("rate", "Agreed rate in Naira?", validators.positive_number("Rate")),
        ],
        commit=commit,
        on_success=on_success,
        summary=summary,
        input_model=CreateRouteArgs,
    )
