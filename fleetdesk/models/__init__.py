"""
Models package for the fleetdesk service.
"""
from .session import Session, SessionPhase, Turn, TenantBinding, ResolvedTenant, Unregistered
from .results import ActionResult

__all__ = [
    "Session",
    "SessionPhase",
    "Turn",
    "TenantBinding",
    "ResolvedTenant",
    "Unregistered",
    "ActionResult",
]
