"""
Aggregations over tenant records.

The document store only filters on equality, so date ranges and
cross-collection joins are computed here in memory.
"""
from collections import defaultdict
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional

from fleetdesk.models.entities import InvoiceStatus, ResourceStatus, RouteStatus
from fleetdesk.utils.money import format_naira, round_cents, to_decimal

PERIOD_DAYS = {"week": 7, "month": 30, "year": 365}


def period_start(period: str, today: date) -> date:
    return today - timedelta(days=PERIOD_DAYS.get(period, PERIOD_DAYS["month"]))


def within_dates(
    records: Iterable[Dict[str, Any]],
    field: str,
    start: Optional[str] = None,
    end: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Keep records whose ISO date ``field`` falls in ``[start, end]``."""
    kept = []
    for record in records:
        value = (record.get(field) or "")[:10]
        if start and (not value or value < start):
            continue
        if end and (not value or value > end):
            continue
        kept.append(record)
    return kept


def _rate(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


def route_performance(routes: List[Dict[str, Any]], expenses: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Completion/cancellation rates plus net profit.

    Net profit is ``rate - route expenses`` summed over Completed routes only;
    In Progress routes are counted as assigned and never contribute profit.
    """
    by_status = defaultdict(int)
    for route in routes:
        by_status[route.get("status")] += 1

    expenses_by_route = defaultdict(lambda: to_decimal(0))
    for expense in expenses:
        if expense.get("routeId"):
            expenses_by_route[expense["routeId"]] += to_decimal(expense.get("amount") or 0)

    revenue = to_decimal(0)
    costs = to_decimal(0)
    for route in routes:
        if route.get("status") != RouteStatus.COMPLETED.value:
            continue
        revenue += to_decimal(route.get("rate") or 0)
        costs += expenses_by_route[route.get("id")]
    net_profit = round_cents(revenue - costs)

    total = len(routes)
    completed = by_status[RouteStatus.COMPLETED.value]
    cancelled = by_status[RouteStatus.CANCELLED.value]
    completion_rate = _rate(completed, total)
    cancellation_rate = _rate(cancelled, total)

    if total == 0:
        insight = "No routes recorded for this period yet."
    elif cancellation_rate > 20:
        insight = "Cancellation rate is high. Review why routes are being cancelled."
    elif completion_rate >= 80:
        insight = "Routes are completing reliably."
    else:
        insight = "Several routes are still open. Follow up on pending and in-progress trips."

    return {
        "totalRoutes": total,
        "completedRoutes": completed,
        "pendingRoutes": by_status[RouteStatus.PENDING.value],
        "assignedRoutes": by_status[RouteStatus.IN_PROGRESS.value],
        "cancelledRoutes": cancelled,
        "completionRate": completion_rate,
        "cancellationRate": cancellation_rate,
        "revenue": float(round_cents(revenue)),
        "expenses": float(round_cents(costs)),
        "netProfit": float(net_profit),
        "netProfitFormatted": format_naira(net_profit),
        "insight": insight,
    }


def idle_drivers(drivers: List[Dict[str, Any]], routes: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Active drivers with no In Progress route."""
    busy = {
        route.get("driverId")
        for route in routes
        if route.get("status") == RouteStatus.IN_PROGRESS.value and route.get("driverId")
    }
    return [
        driver for driver in drivers
        if driver.get("status", ResourceStatus.ACTIVE.value) == ResourceStatus.ACTIVE.value
        and driver.get("id") not in busy
    ]


def driver_performance(drivers: List[Dict[str, Any]], routes: List[Dict[str, Any]], top_n: int = 5) -> Dict[str, Any]:
    active = [d for d in drivers if d.get("status", ResourceStatus.ACTIVE.value) == ResourceStatus.ACTIVE.value]
    stats = []
    for driver in active:
        driver_routes = [r for r in routes if r.get("driverId") == driver.get("id")]
        completed = [r for r in driver_routes if r.get("status") == RouteStatus.COMPLETED.value]
        revenue = sum((to_decimal(r.get("rate") or 0) for r in completed), to_decimal(0))
        stats.append({
            "id": driver.get("id"),
            "name": driver.get("name"),
            "totalRoutes": len(driver_routes),
            "completedRoutes": len(completed),
            "completionRate": _rate(len(completed), len(driver_routes)),
            "revenue": float(round_cents(revenue)),
        })
    stats.sort(key=lambda s: (s["completedRoutes"], s["revenue"]), reverse=True)

    idle = idle_drivers(active, routes)
    return {
        "totalActiveDrivers": len(active),
        "topPerformers": stats[:top_n],
        "idleDrivers": [{"id": d.get("id"), "name": d.get("name")} for d in idle],
        "insight": (
            f"{len(idle)} of {len(active)} active drivers have no route in progress."
            if active else "No active drivers registered yet."
        ),
    }


def is_overdue(invoice: Dict[str, Any], today: date) -> bool:
    status = invoice.get("status")
    if status == InvoiceStatus.OVERDUE.value:
        return True
    due = (invoice.get("dueDate") or "")[:10]
    return status == InvoiceStatus.SENT.value and bool(due) and due < today.isoformat()


def invoice_summary(invoices: List[Dict[str, Any]], today: date) -> Dict[str, Any]:
    totals = defaultdict(lambda: to_decimal(0))
    counts = defaultdict(int)
    for invoice in invoices:
        status = invoice.get("status")
        counts[status] += 1
        totals[status] += to_decimal(invoice.get("total") or 0)

    overdue = [i for i in invoices if is_overdue(i, today)]
    overdue_amount = sum((to_decimal(i.get("total") or 0) for i in overdue), to_decimal(0))
    outstanding = totals[InvoiceStatus.SENT.value] + totals[InvoiceStatus.OVERDUE.value]

    return {
        "totalInvoices": len(invoices),
        "byStatus": {status: counts[status] for status in counts},
        "paidRevenue": float(round_cents(totals[InvoiceStatus.PAID.value])),
        "outstanding": float(round_cents(outstanding)),
        "overdueCount": len(overdue),
        "overdueAmount": float(round_cents(overdue_amount)),
        "overdueAmountFormatted": format_naira(round_cents(overdue_amount)),
        "overdueList": [
            {
                "id": i.get("id"),
                "client": i.get("clientName"),
                "amount": i.get("total"),
                "dueDate": i.get("dueDate"),
            }
            for i in overdue[:5]
        ],
    }


def expense_summary(expenses: List[Dict[str, Any]]) -> Dict[str, Any]:
    by_category = defaultdict(lambda: to_decimal(0))
    for expense in expenses:
        by_category[expense.get("category") or "Other"] += to_decimal(expense.get("amount") or 0)
    total = sum(by_category.values(), to_decimal(0))

    categories = sorted(
        (
            {
                "category": category,
                "amount": float(round_cents(amount)),
                "percentage": round(float(amount / total * 100), 2) if total else 0.0,
            }
            for category, amount in by_category.items()
        ),
        key=lambda c: c["amount"],
        reverse=True,
    )
    if not categories:
        insight = "No expenses recorded for this period."
    elif categories[0]["category"].lower() == "fuel" and categories[0]["percentage"] > 40:
        insight = f"Fuel is {categories[0]['percentage']:.0f}% of expenses. Consider route planning and maintenance."
    else:
        insight = f"{categories[0]['category']} is the largest expense category."

    return {
        "totalExpenses": float(round_cents(total)),
        "numberOfExpenses": len(expenses),
        "categories": categories,
        "insight": insight,
    }


def fleet_utilization(vehicles: List[Dict[str, Any]], routes: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Utilization = active vehicles on an In Progress route / active vehicles * 100."""
    active = [v for v in vehicles if v.get("status", ResourceStatus.ACTIVE.value) == ResourceStatus.ACTIVE.value]
    active_ids = {v.get("id") for v in active}
    in_use = {
        route.get("vehicleId")
        for route in routes
        if route.get("status") == RouteStatus.IN_PROGRESS.value and route.get("vehicleId") in active_ids
    }
    utilization = _rate(len(in_use), len(active))
    return {
        "totalVehicles": len(vehicles),
        "activeVehicles": len(active),
        "vehiclesInUse": len(in_use),
        "idleVehicles": len(active) - len(in_use),
        "utilizationRate": utilization,
        "insight": (
            "Fleet utilization is low. Consider taking on more routes or resting idle vehicles."
            if active and utilization < 50 else "Fleet utilization looks healthy."
            if active else "No active vehicles registered yet."
        ),
    }
