"""
Invoice-profile wizard.

Collects the business details printed on every invoice. Bank details are
only asked for bank-transfer profiles, and the account holder's name is
resolved through bank verification when the bank is recognised.
"""
from fleetdesk.core.exceptions import ValidationException
from fleetdesk.flows import validators
from fleetdesk.flows.engine import FlowContext, FlowDefinition, State, Step
from fleetdesk.models.flows import InvoiceProfileInput
from fleetdesk.models.results import ActionResult
from fleetdesk.models.tools import VerifyBankAccountArgs
from fleetdesk.services.bank_verification import find_bank

PAYMENT_METHODS = {"1": "Bank Transfer", "2": "Cheque", "3": "Cash"}
BANK_TRANSFER = "Bank Transfer"


def payment_method(text, ctx=None, state=None) -> str:
    value = (text or "").strip()
    if value in PAYMENT_METHODS:
        return PAYMENT_METHODS[value]
    for method in PAYMENT_METHODS.values():
        if method.lower() == value.lower():
            return method
    raise ValidationException("Please reply 1, 2 or 3", field="payment_method")


def bank_name(text, ctx=None, state=None) -> dict:
    value = validators.min_length(text, 3, "Bank name")
    match = find_bank(value)
    if match is None:
        return {"bank_name": value.title(), "bank_code": None}
    official, code = match
    return {"bank_name": official, "bank_code": code}


async def account_number(text, ctx: FlowContext, state: State) -> dict:
    number = validators.digits(10, "Account number")(text)
    if not state.get("bank_code"):
        return {"account_number": number, "account_name": None}

    result = await ctx.executor.verify_bank_account(
        ctx.tenant_id, VerifyBankAccountArgs(account_number=number, bank_code=state["bank_code"])
    )
    if result.success:
        return {"account_number": number, "account_name": result.data["account_name"]}
    if result.error_code == "SERVICE_UNAVAILABLE":
        # Keep the number; the name can be confirmed later
        return {"account_number": number, "account_name": None}
    raise ValidationException(
        f"I couldn't verify that account at {state['bank_name']}. Please check the number.",
        field="account_number",
    )


def is_bank_transfer(state: State) -> bool:
    return state.get("payment_method") == BANK_TRANSFER


def summary(state: State) -> str:
    lines = [
        "🧾 *Invoice Profile*",
        f"Company: {state['company_name']}",
        f"Address: {state['address']}",
        f"Email: {state['email']}",
        f"Phone: {state['phone']}",
        f"Payment: {state['payment_method']}",
    ]
    if is_bank_transfer(state):
        lines.append(f"Bank: {state['bank_name']}")
        account = state["account_number"]
        if state.get("account_name"):
            account += f" ({state['account_name']})"
        lines.append(f"Account: {account}")
    return "\n".join(lines)


async def commit(state: State, ctx: FlowContext) -> ActionResult:
    return await ctx.executor.save_invoice_profile(ctx.tenant_id, InvoiceProfileInput.model_validate(state))


def on_success(result: ActionResult, state: State) -> str:
    return "✅ Invoice profile saved."


def follow_up(state: State):
    return "invoice" if state.get("return_to_invoice") else None


def build() -> FlowDefinition:
    return FlowDefinition(
        flow_id="invoice_profile",
        title="invoice profile",
        intro="🧾 First, let's set up the business details that appear on your invoices.",
        steps=[
            Step("company_name", "Company name as it should appear on invoices?",
                 validators.text_value(2, "Company name")),
            Step("address", "Business address?", validators.text_value(3, "Address")),
            Step("email", "Billing email address?", validators.email),
            Step("phone", "Billing phone number?", validators.phone),
            Step(
                "payment_method",
                "How should clients pay you?\n\n1. Bank Transfer\n2. Cheque\n3. Cash",
                payment_method,
            ),
            Step("bank_name", "Which bank? (e.g. GTBank, Access, Zenith)", bank_name, when=is_bank_transfer),
            Step("account_number", "Account number (10 digits)?", account_number, when=is_bank_transfer),
        ],
        commit=commit,
        on_success=on_success,
        summary=summary,
        input_model=InvoiceProfileInput,
        follow_up=follow_up,
        carry_over=lambda state: {},
    )
