"""
Argument models for the operations the reasoning service may call.

Each model is tagged with its tool name so one ``TypeAdapter`` validates any
incoming call, and the JSON schema handed to the reasoning service is
generated from the same models. Tenant identifiers are never part of these
schemas; unknown keys (including any attempt to pass one) are dropped.
"""
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from fleetdesk.core.exceptions import ValidationException
from fleetdesk.utils.identity import canonicalize_address, is_valid_national_number

RouteStatusArg = Literal["Pending", "In Progress", "Completed", "Cancelled"]
InvoiceStatusArg = Literal["Draft", "Sent", "Paid", "Overdue", "Cancelled"]
PeriodArg = Literal["week", "month", "year"]
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


def canonical_phone(v: str) -> str:
    """Shared ``phone`` validator: a full national number, returned canonical."""
    try:
        canonical = canonicalize_address(v)
    except ValidationException as e:
        raise ValueError(e.detail) from e
    if not is_valid_national_number(canonical):
        raise ValueError(f"'{v}' is not a valid phone number")
    return canonical


PhoneNumber = Annotated[str, AfterValidator(canonical_phone)]


class ToolArgs(BaseModel):
    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)


class GetRoutesArgs(ToolArgs):
    """List routes, optionally filtered by status and a date range."""
    tool: Literal["get_routes"] = "get_routes"
    status: Optional[RouteStatusArg] = None
    limit: int = Field(default=10, ge=1, le=50)
    start_date: Optional[str] = Field(default=None, pattern=DATE_PATTERN, description="YYYY-MM-DD")
    end_date: Optional[str] = Field(default=None, pattern=DATE_PATTERN, description="YYYY-MM-DD")


class GetDriversArgs(ToolArgs):
    """List drivers."""
    tool: Literal["get_drivers"] = "get_drivers"
    status: Optional[Literal["Active", "Inactive"]] = None
    limit: int = Field(default=10, ge=1, le=50)


class GetVehiclesArgs(ToolArgs):
    """List vehicles."""
    tool: Literal["get_vehicles"] = "get_vehicles"
    status: Optional[Literal["Active", "Inactive"]] = None
    limit: int = Field(default=10, ge=1, le=50)


class GetClientsArgs(ToolArgs):
    """List clients."""
    tool: Literal["get_clients"] = "get_clients"
    limit: int = Field(default=10, ge=1, le=50)


class GetInvoicesArgs(ToolArgs):
    """List invoices, optionally filtered by status, minimum amount and date range."""
    tool: Literal["get_invoices"] = "get_invoices"
    status: Optional[InvoiceStatusArg] = None
    min_amount: Optional[float] = Field(default=None, ge=0)
    start_date: Optional[str] = Field(default=None, pattern=DATE_PATTERN, description="YYYY-MM-DD")
    end_date: Optional[str] = Field(default=None, pattern=DATE_PATTERN, description="YYYY-MM-DD")
    limit: int = Field(default=10, ge=1, le=50)


class GetExpensesArgs(ToolArgs):
    """List expenses for a recent period, optionally for one category."""
    tool: Literal["get_expenses"] = "get_expenses"
    period: PeriodArg = "month"
    category: Optional[str] = None
    limit: int = Field(default=20, ge=1, le=50)


class GetWalletBalanceArgs(ToolArgs):
    """Current wallet balance of the organization."""
    tool: Literal["get_wallet_balance"] = "get_wallet_balance"


class GetNotificationsArgs(ToolArgs):
    """Recent notifications sent to the organization."""
    tool: Literal["get_notifications"] = "get_notifications"
    limit: int = Field(default=5, ge=1, le=20)


class AnalyzeRoutePerformanceArgs(ToolArgs):
    """Route completion/cancellation rates and net profit from completed routes."""
    tool: Literal["analyze_route_performance"] = "analyze_route_performance"
    period: PeriodArg = "month"


class AnalyzeDriverPerformanceArgs(ToolArgs):
    """Top drivers by completed routes, plus idle drivers."""
    tool: Literal["analyze_driver_performance"] = "analyze_driver_performance"
    top_n: int = Field(default=5, ge=1, le=20)


class AnalyzeInvoicesArgs(ToolArgs):
    """Invoice totals by status, outstanding and overdue amounts."""
    tool: Literal["analyze_invoices"] = "analyze_invoices"
    period: PeriodArg = "month"


class AnalyzeExpensesArgs(ToolArgs):
    """Expense totals by category for a period."""
    tool: Literal["analyze_expenses"] = "analyze_expenses"
    period: PeriodArg = "month"


class AnalyzeFleetArgs(ToolArgs):
    """Fleet size and utilization."""
    tool: Literal["analyze_fleet"] = "analyze_fleet"


class CreateRouteArgs(ToolArgs):
    """Create a new route (status Pending)."""
    tool: Literal["create_route"] = "create_route"
    pickup_location: str = Field(min_length=2)
    delivery_location: str = Field(min_length=2)
    client_name: Optional[str] = None
    date: str = Field(pattern=DATE_PATTERN, description="YYYY-MM-DD")
    rate: float = Field(default=0, ge=0)


class CreateClientArgs(ToolArgs):
    """Register a client company."""
    tool: Literal["create_client"] = "create_client"
    company_name: str = Field(min_length=2)
    contact_person: str = Field(min_length=2)
    email: str
    phone: PhoneNumber
    address: str = Field(min_length=3)
    cac_number: Optional[str] = None
    tin: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if "@" not in v or "." not in v.split("@")[-1]:
            raise ValueError("Invalid email address")
        return v.strip().lower()


class CreateDriverArgs(ToolArgs):
    """Register a driver."""
    tool: Literal["create_driver"] = "create_driver"
    name: str = Field(min_length=2)
    phone: PhoneNumber
    license_number: str = Field(min_length=3)
    nin: Optional[str] = Field(default=None, pattern=r"^\d{11}$")
    annual_salary: Optional[float] = Field(default=None, gt=0)
    account_number: Optional[str] = Field(default=None, pattern=r"^\d{10}$")


class CreateVehicleArgs(ToolArgs):
    """Register a vehicle."""
    tool: Literal["create_vehicle"] = "create_vehicle"
    make: str
    model: str
    year: int = Field(ge=1980, le=2100)
    plate_number: str = Field(min_length=3)
    vin: Optional[str] = None
    odometer: float = Field(default=0, ge=0)


class AssignRouteArgs(ToolArgs):
    """Assign a driver and vehicle to a route and mark it In Progress."""
    tool: Literal["assign_route"] = "assign_route"
    route_id: str
    driver_name: str
    vehicle_plate: str


class UpdateRouteStatusArgs(ToolArgs):
    """Change a route's status."""
    tool: Literal["update_route_status"] = "update_route_status"
    route_id: str
    status: RouteStatusArg


class AddRouteExpenseArgs(ToolArgs):
    """Record an expense against a route."""
    tool: Literal["add_route_expense"] = "add_route_expense"
    route_id: str
    category: str = Field(description="e.g. Fuel, Tolls, Maintenance")
    amount: float = Field(gt=0)
    description: Optional[str] = None


class DeleteInvoiceArgs(ToolArgs):
    """Delete an invoice. Paid invoices cannot be deleted."""
    tool: Literal["delete_invoice"] = "delete_invoice"
    invoice_id: str


class VerifyBankAccountArgs(ToolArgs):
    """Resolve the account name for a 10-digit account number and bank code."""
    tool: Literal["verify_bank_account"] = "verify_bank_account"
    account_number: str
    bank_code: str


ToolCallArgs = Annotated[
    Union[
        GetRoutesArgs,
        GetDriversArgs,
        GetVehiclesArgs,
        GetClientsArgs,
        GetInvoicesArgs,
        GetExpensesArgs,
        GetWalletBalanceArgs,
        GetNotificationsArgs,
        AnalyzeRoutePerformanceArgs,
        AnalyzeDriverPerformanceArgs,
        AnalyzeInvoicesArgs,
        AnalyzeExpensesArgs,
        AnalyzeFleetArgs,
        CreateRouteArgs,
        CreateClientArgs,
        CreateDriverArgs,
        CreateVehicleArgs,
        AssignRouteArgs,
        UpdateRouteStatusArgs,
        AddRouteExpenseArgs,
        DeleteInvoiceArgs,
        VerifyBankAccountArgs,
    ],
    Field(discriminator="tool"),
]

tool_args_adapter = TypeAdapter(ToolCallArgs)

TOOL_MODELS: Dict[str, type] = {
    model.model_fields["tool"].default: model
    for model in ToolArgs.__subclasses__()
}

MUTATING_TOOLS = frozenset({
    "create_route",
    "create_client",
    "create_driver",
    "create_vehicle",
    "assign_route",
    "update_route_status",
    "add_route_expense",
    "delete_invoice",
})


def parse_tool_arguments(name: str, arguments: Dict[str, Any]) -> ToolArgs:
    """
    Validate raw tool-call arguments.

    Raises:
        KeyError: If the tool name is unknown
        pydantic.ValidationError: If the arguments do not match the schema
    """
    if name not in TOOL_MODELS:
        raise KeyError(name)
    return tool_args_adapter.validate_python({**arguments, "tool": name})


def _parameters_schema(model: type) -> Dict[str, Any]:
    schema = model.model_json_schema()
    properties = {k: v for k, v in schema.get("properties", {}).items() if k != "tool"}
    for prop in properties.values():
        prop.pop("title", None)
    parameters: Dict[str, Any] = {"type": "object", "properties": properties}
    required = [r for r in schema.get("required", []) if r != "tool"]
    if required:
        parameters["required"] = required
    return parameters


def build_tool_schemas() -> List[Dict[str, Any]]:
    """Function-calling declarations for every tool, in catalog order."""
    return [
        {
            "type": "function",
            "function": {
                "name": name,
                "description": (model.__doc__ or name).strip(),
                "parameters": _parameters_schema(model),
            },
        }
        for name, model in TOOL_MODELS.items()
    ]
