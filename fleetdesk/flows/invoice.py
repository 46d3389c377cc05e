"""Create-invoice wizard."""
from fleetdesk.core.exceptions import ValidationException
from fleetdesk.flows import validators
from fleetdesk.flows.engine import FlowContext, FlowDefinition, State, Step
from fleetdesk.models.flows import InvoiceDraftInput
from fleetdesk.models.results import ActionResult
from fleetdesk.utils.money import compute_invoice_totals, format_naira

DEFAULT_VAT_RATE = 7.5


async def client(text, ctx: FlowContext, state=None) -> dict:
    lookup = await ctx.executor.find_by_name(
        "clients", ctx.tenant_id, "companyName", validators.min_length(text, 2, "Client name"), "client"
    )
    if lookup.success:
        return {"client_id": lookup.data["id"], "client_name": lookup.data["companyName"]}
    if lookup.error_code == "AMBIGUOUS":
        raise ValidationException(
            "Several clients match. Which one?\n" + "\n".join(f"• {c}" for c in lookup.candidates),
            field="client_name",
        )
    message = f"{lookup.error}."
    if lookup.candidates:
        message += " Your clients: " + ", ".join(lookup.candidates)
    else:
        message += " Type *cancel* and then *add client* to register one."
    raise ValidationException(message, field="client_name")


def vat_rate(text, ctx=None, state=None) -> float:
    if (text or "").strip().lower() == "default":
        return DEFAULT_VAT_RATE
    rate = validators.positive_number("VAT rate", allow_zero=True)(text)
    if rate > 100:
        raise ValidationException("VAT rate must be between 0 and 100", field="vat_rate")
    return rate


def notes(text, ctx=None, state=None):
    return validators.optional_text("Notes")(text)


def totals(state: State):
    rate = state.get("vat_rate", 0) if state.get("vat_applied") else 0
    return compute_invoice_totals(
        [(state["quantity"], state["unit_price"])], rate, state.get("vat_inclusive", False)
    )


def summary(state: State) -> str:
    subtotal, vat_amount, total = totals(state)
    lines = [
        "🧾 *Invoice Preview*",
        f"Client: {state['client_name']}",
        f"Item: {state['item_description']}",
        f"Quantity: {state['quantity']:g} × {format_naira(state['unit_price'])}",
        f"Subtotal: {format_naira(subtotal)}",
    ]
    if state.get("vat_applied"):
        lines.append(f"VAT ({state['vat_rate']:g}%): {format_naira(vat_amount)}")
    lines.append(f"*Total: {format_naira(total)}*")
    if state.get("notes"):
        lines.append(f"Notes: {state['notes']}")
    return "\n".join(lines)


async def commit(state: State, ctx: FlowContext) -> ActionResult:
    return await ctx.executor.create_invoice(
        ctx.tenant_id, InvoiceDraftInput.model_validate(state), ctx.idempotency_key("create_invoice")
    )


def on_success(result: ActionResult, state: State) -> str:
    return (
        f"✅ Invoice {result.data['invoiceNumber']} created as a draft.\n"
        f"Total: {format_naira(result.data['total'])}, due {result.data['dueDate']}."
    )


def build() -> FlowDefinition:
    return FlowDefinition(
        flow_id="invoice",
        title="invoice",
        intro="🧾 Let's create an invoice.",
        steps=[
            Step("client", "Which client is this invoice for?", client),
            Step("item_description", "Describe the service or item:", validators.text_value(2, "Description")),
            Step("quantity", "Quantity?", validators.positive_number("Quantity")),
            Step("unit_price", "Unit price in Naira?", validators.positive_number("Unit price")),
            Step("vat_applied", "Apply VAT? (YES / NO)", validators.yes_no),
            Step(
                "vat_rate",
                f"VAT rate in %? Type *default* for {DEFAULT_VAT_RATE}%.",
                vat_rate,
                when=lambda state: bool(state.get("vat_applied")),
            ),
            Step("notes", "Any notes for the invoice? Type *skip* for none.", notes),
        ],
        commit=commit,
        on_success=on_success,
        summary=summary,
        input_model=InvoiceDraftInput,
    )
