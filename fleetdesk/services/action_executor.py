"""
Catalog of tenant-scoped domain operations.

Both the wizards and the reasoning-service tool loop go through this class.
Every query filters on ``organizationId`` and every create stamps it; the
tenant id always comes from the resolved sender, never from tool arguments.
Business-rule failures come back as ``ActionResult.fail``; only storage or
programming errors raise.
"""
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

import bcrypt

from fleetdesk.core.config import Settings, get_settings
from fleetdesk.core.exceptions import (
    BusinessRuleException,
    ServiceUnavailableError,
    ValidationException,
)
from fleetdesk.core.logging import get_logger, log_business_event, mask_address
from fleetdesk.models.entities import (
    Client,
    Driver,
    Expense,
    Invoice,
    InvoiceItem,
    InvoiceProfile,
    InvoiceStatus,
    Organization,
    Route,
    RouteStatus,
    UserAccount,
    Vehicle,
)
from fleetdesk.models.flows import InvoiceDraftInput, InvoiceProfileInput, OnboardingInput
from fleetdesk.models.results import ActionResult
from fleetdesk.models.tools import (
    AddRouteExpenseArgs,
    AnalyzeDriverPerformanceArgs,
    AnalyzeExpensesArgs,
    AnalyzeFleetArgs,
    AnalyzeInvoicesArgs,
    AnalyzeRoutePerformanceArgs,
    AssignRouteArgs,
    CreateClientArgs,
    CreateDriverArgs,
    CreateRouteArgs,
    CreateVehicleArgs,
    DeleteInvoiceArgs,
    GetClientsArgs,
    GetDriversArgs,
    GetExpensesArgs,
    GetInvoicesArgs,
    GetNotificationsArgs,
    GetRoutesArgs,
    GetVehiclesArgs,
    GetWalletBalanceArgs,
    ToolArgs,
    UpdateRouteStatusArgs,
    VerifyBankAccountArgs,
)
from fleetdesk.services import analytics
from fleetdesk.services.bank_verification import BankVerificationClient
from fleetdesk.services.document_store import DocumentStore
from fleetdesk.services.tenant_resolver import TenantResolver
from fleetdesk.utils.identity import canonicalize_address, is_valid_national_number
from fleetdesk.utils.ids import generate_entity_id, generate_password
from fleetdesk.utils.money import compute_invoice_totals, format_naira, line_amount

logger = get_logger(__name__)

SCAN_LIMIT = 1000

# Allowed route status changes
ROUTE_TRANSITIONS = {
    RouteStatus.PENDING.value: [RouteStatus.IN_PROGRESS.value, RouteStatus.CANCELLED.value],
    RouteStatus.IN_PROGRESS.value: [RouteStatus.COMPLETED.value, RouteStatus.CANCELLED.value],
    RouteStatus.COMPLETED.value: [],
    RouteStatus.CANCELLED.value: [],
}


INTERNAL_FIELDS = frozenset({"organizationId", "idempotencyKey"})


def _public(record: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in record.items() if k not in INTERNAL_FIELDS}


def _newest_first(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(records, key=lambda r: r.get("createdAt") or "", reverse=True)


class ActionExecutor:
    """Tenant-scoped create/query/update operations."""

    def __init__(
        self,
        store: DocumentStore,
        bank_verifier: Optional[BankVerificationClient] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.bank_verifier = bank_verifier or BankVerificationClient(self.settings)
        self.resolver = TenantResolver(store, self.settings.country_calling_code)
        self._clock = clock or datetime.utcnow

        self._handlers: Dict[str, Callable] = {
            "get_routes": self.get_routes,
            "get_drivers": self.get_drivers,
            "get_vehicles": self.get_vehicles,
            "get_clients": self.get_clients,
            "get_invoices": self.get_invoices,
            "get_expenses": self.get_expenses,
            "get_wallet_balance": self.get_wallet_balance,
            "get_notifications": self.get_notifications,
            "analyze_route_performance": self.analyze_route_performance,
            "analyze_driver_performance": self.analyze_driver_performance,
            "analyze_invoices": self.analyze_invoices,
            "analyze_expenses": self.analyze_expenses,
            "analyze_fleet": self.analyze_fleet,
            "create_route": self.create_route,
            "create_client": self.create_client,
            "create_driver": self.create_driver,
            "create_vehicle": self.create_vehicle,
            "assign_route": self.assign_route,
            "update_route_status": self.update_route_status,
            "add_route_expense": self.add_route_expense,
            "delete_invoice": self.delete_invoice,
            "verify_bank_account": self.verify_bank_account,
        }

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> date:
        return self.now().date()

    async def execute(self, tenant_id: str, args: ToolArgs, idempotency_key: Optional[str] = None) -> ActionResult:
        """Dispatch a validated tool call."""
        handler = self._handlers[args.tool]
        if args.tool.startswith("create_") or args.tool == "add_route_expense":
            return await handler(tenant_id, args, idempotency_key=idempotency_key)
        return await handler(tenant_id, args)

    # ------------------------------------------------------------------
    # Shared helpers

    async def _list(
        self,
        collection: str,
        tenant_id: str,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = SCAN_LIMIT,
    ) -> List[Dict[str, Any]]:
        records = await self.store.query(collection, {**(filters or {}), "organizationId": tenant_id}, limit=limit)
        if limit == SCAN_LIMIT and len(records) >= SCAN_LIMIT:
            logger.warning("Scan limit reached, results truncated", collection=collection,
                           organization_id=tenant_id, limit=SCAN_LIMIT)
        return records

    async def _get_owned(self, collection: str, tenant_id: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """A record by id, only if it belongs to ``tenant_id``."""
        record = await self.store.get(collection, doc_id)
        if record is None or record.get("organizationId") != tenant_id:
            return None
        return record

    async def _existing_for_key(
        self, entity_type: str, collection: str, tenant_id: str, idempotency_key: Optional[str]
    ) -> Tuple[str, Optional[Dict[str, Any]]]:
        """A fresh id, or the record an earlier delivery of the same message already created."""
        if idempotency_key:
            matches = await self._list(collection, tenant_id, {"idempotencyKey": idempotency_key}, limit=1)
            if matches:
                existing = matches[0]
                logger.info("Duplicate create suppressed", entity_type=entity_type, entity_id=existing.get("id"))
                return existing["id"], existing
        return generate_entity_id(entity_type, self.now()), None

    async def find_by_name(
        self,
        collection: str,
        tenant_id: str,
        field: str,
        name: str,
        label: str,
    ) -> ActionResult:
        """
        Resolve a user-typed name to exactly one record.

        Exact case-insensitive match wins; otherwise a unique substring match.
        Zero or several matches fail with the candidate names.
        """
        records = await self._list(collection, tenant_id)
        wanted = name.strip().lower()
        exact = [r for r in records if (r.get(field) or "").strip().lower() == wanted]
        if len(exact) == 1:
            return ActionResult.ok(exact[0])

        partial = exact or [r for r in records if wanted and wanted in (r.get(field) or "").lower()]
        if len(partial) == 1:
            return ActionResult.ok(partial[0])

        if not partial:
            return ActionResult.fail(
                f"No {label} named '{name}' found",
                "NOT_FOUND",
                candidates=[r.get(field) for r in records[:10] if r.get(field)],
            )
        return ActionResult.fail(
            f"Several {label}s match '{name}'",
            "AMBIGUOUS",
            candidates=[r.get(field) for r in partial[:10]],
        )

    # ------------------------------------------------------------------
    # Queries

    async def get_routes(self, tenant_id: str, args: GetRoutesArgs) -> ActionResult:
        filters = {"status": args.status} if args.status else {}
        routes = await self._list("routes", tenant_id, filters)
        routes = analytics.within_dates(routes, "date", args.start_date, args.end_date)
        routes = _newest_first(routes)[:args.limit]
        return ActionResult.ok({"count": len(routes), "routes": [_public(r) for r in routes]})

    async def get_drivers(self, tenant_id: str, args: GetDriversArgs) -> ActionResult:
        filters = {"status": args.status} if args.status else {}
        drivers = _newest_first(await self._list("drivers", tenant_id, filters))[:args.limit]
        return ActionResult.ok({"count": len(drivers), "drivers": [_public(d) for d in drivers]})

    async def get_vehicles(self, tenant_id: str, args: GetVehiclesArgs) -> ActionResult:
        filters = {"status": args.status} if args.status else {}
        vehicles = _newest_first(await self._list("vehicles", tenant_id, filters))[:args.limit]
        return ActionResult.ok({"count": len(vehicles), "vehicles": [_public(v) for v in vehicles]})

    async def get_clients(self, tenant_id: str, args: GetClientsArgs) -> ActionResult:
        clients = _newest_first(await self._list("clients", tenant_id))[:args.limit]
        return ActionResult.ok({"count": len(clients), "clients": [_public(c) for c in clients]})

    async def get_invoices(self, tenant_id: str, args: GetInvoicesArgs) -> ActionResult:
        filters = {"status": args.status} if args.status else {}
        invoices = await self._list("invoices", tenant_id, filters)
        invoices = analytics.within_dates(invoices, "issueDate", args.start_date, args.end_date)
        if args.min_amount is not None:
            invoices = [i for i in invoices if (i.get("total") or 0) >= args.min_amount]
        invoices = _newest_first(invoices)[:args.limit]
        return ActionResult.ok({"count": len(invoices), "invoices": [_public(i) for i in invoices]})

    async def get_expenses(self, tenant_id: str, args: GetExpensesArgs) -> ActionResult:
        filters = {"category": args.category} if args.category else {}
        expenses = await self._list("expenses", tenant_id, filters)
        start = analytics.period_start(args.period, self.today()).isoformat()
        expenses = analytics.within_dates(expenses, "date", start, self.today().isoformat())
        expenses = sorted(expenses, key=lambda e: e.get("date") or "", reverse=True)[:args.limit]
        return ActionResult.ok({"period": args.period, "count": len(expenses), "expenses": [_public(e) for e in expenses]})

    async def get_wallet_balance(self, tenant_id: str, args: Optional[GetWalletBalanceArgs] = None) -> ActionResult:
        """Virtual account balance, falling back to the organization's wallet field."""
        accounts = await self._list("virtual_accounts", tenant_id, limit=1)
        if accounts:
            account = accounts[0]
            balance = account.get("balance") or 0
            return ActionResult.ok({
                "balance": balance,
                "formatted": format_naira(balance),
                "currency": account.get("currency", self.settings.default_currency),
                "accountNumber": account.get("accountNumber"),
                "bankName": account.get("bankName"),
                "source": "virtual_account",
            })

        organization = await self.store.get("organizations", tenant_id)
        if organization is None:
            return ActionResult.fail("Organization not found", "NOT_FOUND")
        balance = organization.get("walletBalance") or 0
        return ActionResult.ok({
            "balance": balance,
            "formatted": format_naira(balance),
            "currency": self.settings.default_currency,
            "source": "organization",
        })

    async def get_notifications(self, tenant_id: str, args: GetNotificationsArgs) -> ActionResult:
        notifications = _newest_first(await self._list("notifications", tenant_id))[:args.limit]
        return ActionResult.ok({"count": len(notifications), "notifications": [_public(n) for n in notifications]})

    # ------------------------------------------------------------------
    # Analyses

    async def analyze_route_performance(self, tenant_id: str, args: AnalyzeRoutePerformanceArgs) -> ActionResult:
        start = analytics.period_start(args.period, self.today()).isoformat()
        routes = analytics.within_dates(await self._list("routes", tenant_id), "date", start)
        expenses = await self._list("expenses", tenant_id)
        return ActionResult.ok({"period": args.period, **analytics.route_performance(routes, expenses)})

    async def analyze_driver_performance(self, tenant_id: str, args: AnalyzeDriverPerformanceArgs) -> ActionResult:
        drivers = await self._list("drivers", tenant_id)
        routes = await self._list("routes", tenant_id)
        return ActionResult.ok(analytics.driver_performance(drivers, routes, args.top_n))

    async def analyze_invoices(self, tenant_id: str, args: AnalyzeInvoicesArgs) -> ActionResult:
        start = analytics.period_start(args.period, self.today()).isoformat()
        invoices = analytics.within_dates(await self._list("invoices", tenant_id), "issueDate", start)
        return ActionResult.ok({"period": args.period, **analytics.invoice_summary(invoices, self.today())})

    async def analyze_expenses(self, tenant_id: str, args: AnalyzeExpensesArgs) -> ActionResult:
        start = analytics.period_start(args.period, self.today()).isoformat()
        expenses = analytics.within_dates(await self._list("expenses", tenant_id), "date", start)
        return ActionResult.ok({"period": args.period, **analytics.expense_summary(expenses)})

    async def analyze_fleet(self, tenant_id: str, args: Optional[AnalyzeFleetArgs] = None) -> ActionResult:
        vehicles = await self._list("vehicles", tenant_id)
        routes = await self._list("routes", tenant_id, {"status": RouteStatus.IN_PROGRESS.value})
        return ActionResult.ok(analytics.fleet_utilization(vehicles, routes))

    async def overdue_invoices(self, tenant_id: str) -> List[Dict[str, Any]]:
        invoices = await self._list("invoices", tenant_id)
        return [i for i in invoices if analytics.is_overdue(i, self.today())]

    async def idle_drivers(self, tenant_id: str) -> List[Dict[str, Any]]:
        drivers = await self._list("drivers", tenant_id)
        routes = await self._list("routes", tenant_id, {"status": RouteStatus.IN_PROGRESS.value})
        return analytics.idle_drivers(drivers, routes)

    # ------------------------------------------------------------------
    # Creates

    async def create_route(
        self, tenant_id: str, args: CreateRouteArgs, idempotency_key: Optional[str] = None
    ) -> ActionResult:
        route_id, existing = await self._existing_for_key("route", "routes", tenant_id, idempotency_key)
        if existing:
            return ActionResult.ok(_public(existing), message="Route already created")

        client_id = None
        client_name = args.client_name
        if args.client_name:
            lookup = await self.find_by_name("clients", tenant_id, "companyName", args.client_name, "client")
            if not lookup.success:
                return lookup
            client_id = lookup.data["id"]
            client_name = lookup.data["companyName"]

        route = Route(
            id=route_id,
            tenant_id=tenant_id,
            pickup_location=args.pickup_location.strip(),
            delivery_location=args.delivery_location.strip(),
            client_id=client_id,
            client_name=client_name,
            date=args.date,
            rate=args.rate,
            created_at=self.now(),
            idempotency_key=idempotency_key,
        )
        await self.store.set("routes", route_id, route.to_record())
        log_business_event("route_created", organization_id=tenant_id, route_id=route_id)
        return ActionResult.ok(_public(route.to_record()), message=f"Route {route_id} created")

    async def create_client(
        self, tenant_id: str, args: CreateClientArgs, idempotency_key: Optional[str] = None
    ) -> ActionResult:
        client_id, existing = await self._existing_for_key("client", "clients", tenant_id, idempotency_key)
        if existing:
            return ActionResult.ok(_public(existing), message="Client already registered")

        clients = await self._list("clients", tenant_id)
        if any((c.get("companyName") or "").strip().lower() == args.company_name.strip().lower() for c in clients):
            return ActionResult.fail(f"A client named '{args.company_name}' already exists", "DUPLICATE")

        phone = canonicalize_address(args.phone, self.settings.country_calling_code)
        client = Client(
            id=client_id,
            tenant_id=tenant_id,
            company_name=args.company_name.strip(),
            contact_person=args.contact_person.strip(),
            email=args.email,
            phone=phone,
            cac_number=args.cac_number,
            tin=args.tin,
            address=args.address.strip(),
            created_at=self.now(),
            idempotency_key=idempotency_key,
        )
        await self.store.set("clients", client_id, client.to_record())
        log_business_event("client_created", organization_id=tenant_id, client_id=client_id)
        return ActionResult.ok(_public(client.to_record()), message=f"Client {client.company_name} registered")

    async def create_driver(
        self, tenant_id: str, args: CreateDriverArgs, idempotency_key: Optional[str] = None
    ) -> ActionResult:
        driver_id, existing = await self._existing_for_key("driver", "drivers", tenant_id, idempotency_key)
        if existing:
            return ActionResult.ok(_public(existing), message="Driver already registered")

        phone = canonicalize_address(args.phone, self.settings.country_calling_code)
        if not is_valid_national_number(phone, self.settings.country_calling_code):
            return ActionResult.fail(f"'{args.phone}' is not a valid phone number", "VALIDATION")

        license_number = args.license_number.strip().upper()
        if await self._list("drivers", tenant_id, {"licenseNumber": license_number}, limit=1):
            return ActionResult.fail(f"A driver with licence {license_number} already exists", "DUPLICATE")

        driver = Driver(
            id=driver_id,
            tenant_id=tenant_id,
            name=args.name.strip(),
            phone=phone,
            license_number=license_number,
            nin=args.nin,
            annual_salary=args.annual_salary,
            account_number=args.account_number,
            created_at=self.now(),
            idempotency_key=idempotency_key,
        )
        await self.store.set("drivers", driver_id, driver.to_record())
        log_business_event("driver_created", organization_id=tenant_id, driver_id=driver_id)
        return ActionResult.ok(_public(driver.to_record()), message=f"Driver {driver.name} registered")

    async def create_vehicle(
        self, tenant_id: str, args: CreateVehicleArgs, idempotency_key: Optional[str] = None
    ) -> ActionResult:
        vehicle_id, existing = await self._existing_for_key("vehicle", "vehicles", tenant_id, idempotency_key)
        if existing:
            return ActionResult.ok(_public(existing), message="Vehicle already registered")

        plate = args.plate_number.strip().upper()
        if await self._list("vehicles", tenant_id, {"plateNumber": plate}, limit=1):
            return ActionResult.fail(f"A vehicle with plate {plate} already exists", "DUPLICATE")

        vehicle = Vehicle(
            id=vehicle_id,
            tenant_id=tenant_id,
            make=args.make.strip(),
            model=args.model.strip(),
            year=args.year,
            plate_number=plate,
            vin=args.vin.strip().upper() if args.vin else None,
            odometer=args.odometer,
            created_at=self.now(),
            idempotency_key=idempotency_key,
        )
        await self.store.set("vehicles", vehicle_id, vehicle.to_record())
        log_business_event("vehicle_created", organization_id=tenant_id, vehicle_id=vehicle_id)
        return ActionResult.ok(_public(vehicle.to_record()), message=f"Vehicle {plate} registered")

    async def create_invoice(
        self, tenant_id: str, draft: InvoiceDraftInput, idempotency_key: Optional[str] = None
    ) -> ActionResult:
        invoice_id, existing = await self._existing_for_key("invoice", "invoices", tenant_id, idempotency_key)
        if existing:
            return ActionResult.ok(_public(existing), message="Invoice already created")

        vat_rate = draft.vat_rate if draft.vat_applied else 0.0
        subtotal, vat_amount, total = compute_invoice_totals(
            [(draft.quantity, draft.unit_price)], vat_rate, draft.vat_inclusive
        )
        issue_date = self.today()
        invoice = Invoice(
            id=invoice_id,
            tenant_id=tenant_id,
            invoice_number=invoice_id,
            client_id=draft.client_id,
            client_name=draft.client_name,
            items=[
                InvoiceItem(
                    description=draft.item_description,
                    quantity=draft.quantity,
                    unit_price=draft.unit_price,
                    amount=float(line_amount(draft.quantity, draft.unit_price)),
                )
            ],
            subtotal=float(subtotal),
            vat_inclusive=draft.vat_inclusive,
            vat_rate=vat_rate,
            vat_amount=float(vat_amount),
            total=float(total),
            currency=self.settings.default_currency,
            status=InvoiceStatus.DRAFT,
            issue_date=issue_date.isoformat(),
            due_date=(issue_date + timedelta(days=self.settings.invoice_due_days)).isoformat(),
            notes=draft.notes,
            created_at=self.now(),
            idempotency_key=idempotency_key,
        )
        await self.store.set("invoices", invoice_id, invoice.to_record())
        log_business_event("invoice_created", organization_id=tenant_id, invoice_id=invoice_id, total=float(total))
        return ActionResult.ok(_public(invoice.to_record()), message=f"Invoice {invoice_id} created")

    async def add_route_expense(
        self, tenant_id: str, args: AddRouteExpenseArgs, idempotency_key: Optional[str] = None
    ) -> ActionResult:
        route = await self._get_owned("routes", tenant_id, args.route_id)
        if route is None:
            return ActionResult.fail(f"Route {args.route_id} not found", "NOT_FOUND")

        expense_id, existing = await self._existing_for_key("expense", "expenses", tenant_id, idempotency_key)
        if existing:
            return ActionResult.ok(_public(existing), message="Expense already recorded")

        expense = Expense(
            id=expense_id,
            tenant_id=tenant_id,
            route_id=args.route_id,
            category=args.category.strip().title(),
            amount=args.amount,
            description=args.description,
            date=self.today().isoformat(),
            created_at=self.now(),
            idempotency_key=idempotency_key,
        )
        await self.store.set("expenses", expense_id, expense.to_record())
        return ActionResult.ok(_public(expense.to_record()), message=f"Expense added to route {args.route_id}")

    # ------------------------------------------------------------------
    # Updates

    async def assign_route(self, tenant_id: str, args: AssignRouteArgs) -> ActionResult:
        """Set driver, vehicle and In Progress status in one write."""
        route = await self._get_owned("routes", tenant_id, args.route_id)
        if route is None:
            return ActionResult.fail(f"Route {args.route_id} not found", "NOT_FOUND")
        if route.get("status") in (RouteStatus.COMPLETED.value, RouteStatus.CANCELLED.value):
            return ActionResult.fail(f"Route {args.route_id} is already {route['status']}", "ROUTE_CLOSED")

        driver_lookup = await self.find_by_name("drivers", tenant_id, "name", args.driver_name, "driver")
        if not driver_lookup.success:
            return driver_lookup
        driver = driver_lookup.data

        vehicle_lookup = await self.find_by_name(
            "vehicles", tenant_id, "plateNumber", args.vehicle_plate.upper(), "vehicle"
        )
        if not vehicle_lookup.success:
            return vehicle_lookup
        vehicle = vehicle_lookup.data

        in_progress = await self._list("routes", tenant_id, {"status": RouteStatus.IN_PROGRESS.value})
        for other in in_progress:
            if other.get("id") == args.route_id:
                continue
            if other.get("driverId") == driver["id"]:
                return ActionResult.fail(f"{driver['name']} is already on route {other['id']}", "DRIVER_BUSY")
            if other.get("vehicleId") == vehicle["id"]:
                return ActionResult.fail(f"{vehicle['plateNumber']} is already on route {other['id']}", "VEHICLE_BUSY")

        fields = {
            "driverId": driver["id"],
            "driverName": driver["name"],
            "vehicleId": vehicle["id"],
            "vehiclePlate": vehicle["plateNumber"],
            "status": RouteStatus.IN_PROGRESS.value,
            "updatedAt": self.now().isoformat(),
        }
        await self.store.update("routes", args.route_id, fields)
        log_business_event("route_assigned", organization_id=tenant_id, route_id=args.route_id,
                           driver_id=driver["id"], vehicle_id=vehicle["id"])
        return ActionResult.ok(
            _public({**route, **fields}),
            message=f"Route {args.route_id} assigned to {driver['name']} ({vehicle['plateNumber']})",
        )

    async def update_route_status(self, tenant_id: str, args: UpdateRouteStatusArgs) -> ActionResult:
        route = await self._get_owned("routes", tenant_id, args.route_id)
        if route is None:
            return ActionResult.fail(f"Route {args.route_id} not found", "NOT_FOUND")

        current = route.get("status", RouteStatus.PENDING.value)
        if current == args.status:
            return ActionResult.ok(_public(route), message=f"Route is already {current}")
        if args.status not in ROUTE_TRANSITIONS.get(current, []):
            return ActionResult.fail(f"Cannot move route from {current} to {args.status}", "INVALID_TRANSITION")

        fields = {"status": args.status, "updatedAt": self.now().isoformat()}
        await self.store.update("routes", args.route_id, fields)
        log_business_event("route_status_changed", organization_id=tenant_id, route_id=args.route_id,
                           from_status=current, to_status=args.status)
        return ActionResult.ok(_public({**route, **fields}), message=f"Route {args.route_id} is now {args.status}")

    async def delete_invoice(self, tenant_id: str, args: DeleteInvoiceArgs) -> ActionResult:
        invoice = await self._get_owned("invoices", tenant_id, args.invoice_id)
        if invoice is None:
            return ActionResult.fail(f"Invoice {args.invoice_id} not found", "NOT_FOUND")
        if invoice.get("status") == InvoiceStatus.PAID.value:
            return ActionResult.fail("Paid invoices cannot be deleted", "INVOICE_PAID")

        await self.store.delete("invoices", args.invoice_id)
        log_business_event("invoice_deleted", organization_id=tenant_id, invoice_id=args.invoice_id)
        return ActionResult.ok({"id": args.invoice_id}, message=f"Invoice {args.invoice_id} deleted")

    async def verify_bank_account(self, tenant_id: str, args: VerifyBankAccountArgs) -> ActionResult:
        try:
            verified = await self.bank_verifier.verify_account(args.account_number, args.bank_code)
        except ValidationException as e:
            return ActionResult.fail(e.detail, "INVALID_ACCOUNT")
        except ServiceUnavailableError as e:
            return ActionResult.fail(str(e.detail), "SERVICE_UNAVAILABLE")

        if verified is None:
            return ActionResult.fail("Account could not be verified", "INVALID_ACCOUNT")
        return ActionResult.ok(verified.model_dump(by_alias=False))

    # ------------------------------------------------------------------
    # Invoice profile

    async def get_invoice_profile(self, tenant_id: str) -> Optional[Dict[str, Any]]:
        return await self.store.get("invoice_profiles", tenant_id)

    async def save_invoice_profile(self, tenant_id: str, profile: InvoiceProfileInput) -> ActionResult:
        record = InvoiceProfile(
            tenant_id=tenant_id,
            updated_at=self.now(),
            **profile.model_dump(),
        ).to_record()
        await self.store.set("invoice_profiles", tenant_id, record)
        log_business_event("invoice_profile_saved", organization_id=tenant_id,
                           payment_method=profile.payment_method)
        return ActionResult.ok(record, message="Invoice profile saved")

    # ------------------------------------------------------------------
    # Registration

    async def register_organization(
        self,
        canonical: str,
        data: OnboardingInput,
        contact_name: Optional[str] = None,
    ) -> ActionResult:
        """
        Create organization, owner user and channel binding for a new sign-up.

        Returns the generated dashboard password in ``data`` so the wizard can
        show it once; only its hash is stored.
        """
        existing = await self.store.get("whatsapp_users", canonical)
        if existing:
            return ActionResult.fail("This number is already registered", "ALREADY_REGISTERED")

        now = self.now()
        organization_id = str(uuid.uuid4())
        user_id = str(uuid.uuid4())
        password = generate_password()

        organization = Organization(
            id=organization_id,
            name=data.company_name.strip(),
            fleet_size=data.fleet_size,
            address=data.street.strip(),
            city=data.city.strip(),
            state=data.state,
            owner_user_id=user_id,
            trial_ends_at=now + timedelta(days=self.settings.trial_days),
            created_at=now,
        )
        user = UserAccount(
            id=user_id,
            tenant_id=organization_id,
            first_name=data.first_name,
            last_name=data.last_name,
            phone_number=canonical,
            pin_hash=data.pin_hash,
            password_hash=bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode(),
            created_at=now,
        )

        await self.store.set("organizations", organization_id, organization.to_record())
        await self.store.set("users", user_id, user.to_record())
        try:
            await self.resolver.bind(canonical, organization_id, user_id)
        except BusinessRuleException as e:
            return ActionResult.fail(str(e), "ALREADY_REGISTERED")

        log_business_event("organization_registered", organization_id=organization_id,
                           phone=mask_address(canonical), fleet_size=data.fleet_size,
                           contact_name=contact_name)
        return ActionResult.ok({
            "organizationId": organization_id,
            "userId": user_id,
            "password": password,
            "trialEndsAt": organization.trial_ends_at.date().isoformat(),
        })
