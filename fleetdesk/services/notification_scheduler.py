"""
Proactive business alerts.

A background loop periodically sweeps every organization, composes a short
digest (overdue invoices, idle drivers, low fleet utilization) and sends it
to the owner's bound number. A per-organization cool-down keeps the sweep
idempotent across restarts.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import httpx

from fleetdesk.core.config import Settings, get_settings
from fleetdesk.core.exceptions import ServiceUnavailableError
from fleetdesk.core.logging import correlation_context, get_logger, log_business_event, mask_address
from fleetdesk.services.action_executor import ActionExecutor
from fleetdesk.services.document_store import DocumentStore
from fleetdesk.services.messaging import MessagingClient
from fleetdesk.utils.money import format_naira

logger = get_logger(__name__)

MAX_IDLE_DRIVERS_LISTED = 5


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        logger.warning("Unreadable notification timestamp", value=value)
        return None


class NotificationScheduler:
    """Runs ``run_sweep`` every ``notification_interval_seconds``."""

    def __init__(
        self,
        store: DocumentStore,
        executor: ActionExecutor,
        messaging: MessagingClient,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        settings = settings or get_settings()
        self.store = store
        self.executor = executor
        self.messaging = messaging
        self.interval = settings.notification_interval_seconds
        self.cooldown = timedelta(hours=settings.notification_cooldown_hours)
        self.utilization_threshold = settings.fleet_utilization_alert_threshold
        self._clock = clock or datetime.utcnow
        self._task: Optional[asyncio.Task] = None

        logger.info(
            "Notification scheduler initialized",
            interval_seconds=self.interval,
            cooldown_hours=settings.notification_cooldown_hours,
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background sweep task."""
        if self.running:
            logger.warning("Notification scheduler already running")
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("Notification scheduler started")

    async def stop(self) -> None:
        """Stop the background sweep task."""
        if self.running:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            logger.info("Notification scheduler stopped")
        self._task = None

    async def _loop(self) -> None:
        logger.info("Starting notification sweep loop")

        while True:
            try:
                await asyncio.sleep(self.interval)
                await self.run_sweep()

            except asyncio.CancelledError:
                logger.info("Notification sweep loop cancelled")
                break
            except Exception as e:
                logger.error("Error in notification sweep loop", error=str(e), exc_info=True)

    async def run_sweep(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Notify every organization that is due.

        Returns:
            Counts of organizations ``notified``, ``skipped`` and ``failed``
        """
        now = now or self._clock()
        stats = {"notified": 0, "skipped": 0, "failed": 0}

        organizations = await self.store.query("organizations", {})
        for organization in organizations:
            with correlation_context(tenant_id=organization.get("id")):
                try:
                    outcome = await self.notify_organization(organization, now)
                except Exception as e:
                    logger.error("Notification failed for organization", organization_id=organization.get("id"),
                                 error=str(e), exc_info=True)
                    outcome = "failed"
            stats[outcome] += 1

        logger.info("Notification sweep complete", organizations=len(organizations), **stats)
        return stats

    def in_cooldown(self, organization: Dict[str, Any], now: datetime) -> bool:
        last = _parse_timestamp(organization.get("lastNotificationAt"))
        return last is not None and now - last < self.cooldown

    async def notify_organization(self, organization: Dict[str, Any], now: datetime) -> str:
        """Send one organization's digest; returns ``notified``, ``skipped`` or ``failed``."""
        organization_id = organization["id"]
        if self.in_cooldown(organization, now):
            return "skipped"

        recipient = await self.recipient_for(organization)
        if recipient is None:
            logger.debug("No bound number for organization", organization_id=organization_id)
            return "skipped"

        alerts = await self.compose_alerts(organization_id)
        if not alerts:
            return "skipped"

        message = f"🔔 *FleetDesk Update* for {organization.get('name', 'your business')}\n\n" + "\n\n".join(alerts)
        try:
            await self.messaging.send_text(recipient, message)
        except (ServiceUnavailableError, httpx.HTTPError) as e:
            logger.warning("Proactive notification not delivered", organization_id=organization_id,
                           phone=mask_address(recipient), error=str(e))
            return "failed"

        await self.store.update("organizations", organization_id, {"lastNotificationAt": now.isoformat()})
        await self.store.add("notifications", {
            "organizationId": organization_id,
            "type": "digest",
            "message": message,
            "alertCount": len(alerts),
            "read": False,
            "createdAt": now.isoformat(),
        })
        log_business_event("notification_sent", organization_id=organization_id, alert_count=len(alerts))
        return "notified"

    async def recipient_for(self, organization: Dict[str, Any]) -> Optional[str]:
        """The owner's phone number, else any number bound to the organization."""
        owner_id = organization.get("ownerUserId")
        if owner_id:
            owner = await self.store.get("users", owner_id)
            if owner and owner.get("phoneNumber"):
                return owner["phoneNumber"]

        bindings = await self.store.query("whatsapp_users", {"organizationId": organization["id"]}, limit=1)
        if bindings:
            return bindings[0].get("canonicalAddress")
        return None

    async def compose_alerts(self, organization_id: str) -> List[str]:
        alerts = []

        overdue = await self.executor.overdue_invoices(organization_id)
        if overdue:
            amount = sum(float(invoice.get("total") or 0) for invoice in overdue)
            alerts.append(
                f"💰 {len(overdue)} overdue invoice{'s' if len(overdue) != 1 else ''} "
                f"worth {format_naira(amount)}. Ask me \"show overdue invoices\" for details."
            )

        idle = await self.executor.idle_drivers(organization_id)
        if idle:
            names = ", ".join(d.get("name", "?") for d in idle[:MAX_IDLE_DRIVERS_LISTED])
            more = len(idle) - MAX_IDLE_DRIVERS_LISTED
            if more > 0:
                names += f" and {more} more"
            alerts.append(f"🚚 Idle drivers: {names}.")

        fleet = (await self.executor.analyze_fleet(organization_id)).data
        if fleet["activeVehicles"] and fleet["utilizationRate"] < self.utilization_threshold:
            alerts.append(
                f"📉 Fleet utilization is {fleet['utilizationRate']:.0f}% "
                f"({fleet['vehiclesInUse']} of {fleet['activeVehicles']} vehicles on the road)."
            )

        return alerts
