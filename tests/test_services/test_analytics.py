"""
Tests for in-memory aggregations.
"""
from datetime import date

from fleetdesk.services import analytics

TODAY = date(2026, 10, 18)


def route(route_id, status, rate=0, driver_id=None, vehicle_id=None, day="2026-10-10"):
    return {"id": route_id, "status": status, "rate": rate, "driverId": driver_id,
            "vehicleId": vehicle_id, "date": day}


class TestDateHelpers:
    def test_period_start(self):
        assert analytics.period_start("week", TODAY) == date(2026, 10, 11)
        assert analytics.period_start("bogus", TODAY) == date(2026, 9, 18)

    def test_within_dates_inclusive_and_drops_undated(self):
        records = [{"d": "2026-10-01"}, {"d": "2026-10-18T10:00:00"}, {"d": None}, {"d": "2026-11-01"}]
        kept = analytics.within_dates(records, "d", "2026-10-01", "2026-10-18")
        assert [r["d"] for r in kept] == ["2026-10-01", "2026-10-18T10:00:00"]


class TestRoutePerformance:
    """Net profit counts only Completed routes."""

    def test_net_profit_from_completed_routes_only(self):
        routes = [
            route("r1", "Completed", rate=100000),
            route("r2", "In Progress", rate=500000),
            route("r3", "Cancelled", rate=80000),
            route("r4", "Pending", rate=20000),
        ]
        expenses = [
            {"routeId": "r1", "amount": 30000},
            {"routeId": "r2", "amount": 10000},
            {"amount": 999},
        ]

        result = analytics.route_performance(routes, expenses)

        assert result["netProfit"] == 70000
        assert result["revenue"] == 100000
        assert result["expenses"] == 30000
        assert result["assignedRoutes"] == 1
        assert result["completionRate"] == 25.0
        assert result["cancellationRate"] == 25.0
        assert result["insight"].startswith("Cancellation rate is high")

    def test_no_routes(self):
        result = analytics.route_performance([], [])
        assert result["completionRate"] == 0.0
        assert result["insight"] == "No routes recorded for this period yet."


class TestDrivers:
    def test_idle_drivers_excludes_busy_and_inactive(self):
        drivers = [
            {"id": "d1", "name": "Musa"},
            {"id": "d2", "name": "Tunde"},
            {"id": "d3", "name": "Chidi", "status": "Inactive"},
        ]
        routes = [route("r1", "In Progress", driver_id="d1"), route("r2", "Completed", driver_id="d2")]

        assert [d["id"] for d in analytics.idle_drivers(drivers, routes)] == ["d2"]

    def test_driver_performance_ranks_by_completed(self):
        drivers = [{"id": "d1", "name": "Musa"}, {"id": "d2", "name": "Tunde"}]
        routes = [
            route("r1", "Completed", rate=100, driver_id="d2"),
            route("r2", "Completed", rate=100, driver_id="d2"),
            route("r3", "Completed", rate=100, driver_id="d1"),
            route("r4", "In Progress", driver_id="d1"),
        ]

        result = analytics.driver_performance(drivers, routes, top_n=1)

        assert [p["name"] for p in result["topPerformers"]] == ["Tunde"]
        assert result["idleDrivers"] == [{"id": "d2", "name": "Tunde"}]


class TestInvoices:
    def test_overdue_rules(self):
        assert analytics.is_overdue({"status": "Overdue"}, TODAY)
        assert analytics.is_overdue({"status": "Sent", "dueDate": "2026-10-17"}, TODAY)
        assert not analytics.is_overdue({"status": "Sent", "dueDate": "2026-10-18"}, TODAY)
        assert not analytics.is_overdue({"status": "Draft", "dueDate": "2026-01-01"}, TODAY)

    def test_summary(self):
        invoices = [
            {"id": "i1", "status": "Paid", "total": 1000},
            {"id": "i2", "status": "Sent", "total": 500, "dueDate": "2026-10-01", "clientName": "Acme"},
            {"id": "i3", "status": "Sent", "total": 250, "dueDate": "2026-12-01"},
        ]

        result = analytics.invoice_summary(invoices, TODAY)

        assert result["paidRevenue"] == 1000
        assert result["outstanding"] == 750
        assert result["overdueCount"] == 1
        assert result["overdueList"][0]["client"] == "Acme"


class TestExpenses:
    def test_fuel_heavy_insight(self):
        expenses = [{"category": "Fuel", "amount": 60}, {"category": "Tolls", "amount": 40}]

        result = analytics.expense_summary(expenses)

        assert result["totalExpenses"] == 100
        assert result["categories"][0] == {"category": "Fuel", "amount": 60.0, "percentage": 60.0}
        assert result["insight"].startswith("Fuel is 60%")


class TestFleetUtilization:
    def test_utilization_counts_active_vehicles_on_road(self):
        vehicles = [{"id": "v1"}, {"id": "v2"}, {"id": "v3"}, {"id": "v4", "status": "Inactive"}]
        routes = [route("r1", "In Progress", vehicle_id="v1"), route("r2", "In Progress", vehicle_id="v4")]

        result = analytics.fleet_utilization(vehicles, routes)

        assert result["activeVehicles"] == 3
        assert result["vehiclesInUse"] == 1
        assert result["utilizationRate"] == 33.33
        assert result["idleVehicles"] == 2

    def test_empty_fleet(self):
        result = analytics.fleet_utilization([], [])
        assert result["utilizationRate"] == 0.0
        assert result["insight"] == "No active vehicles registered yet."
