"""
Dispatch service - match orders to drivers and announce them.

This module handles:
    - Finding candidate drivers (GeoMatcher)
    - Offer, withdraw and customer notifications (NotificationFanout)
    - Orchestrating lifecycle operations with matching and fanout (DispatchCoordinator)
"""

from typing import Optional

from .coordinator import DispatchCoordinator
from .fanout import FanoutResult, NotificationFanout
from .geo_matcher import GeoMatcher, MatchPolicy

_coordinator: Optional[DispatchCoordinator] = None


def get_dispatch_coordinator() -> DispatchCoordinator:
    """Get the process-wide coordinator, wired to the shared publisher."""
    global _coordinator
    if _coordinator is None:
        from realtime.publisher import get_publisher
        _coordinator = DispatchCoordinator(get_publisher())
    return _coordinator


__all__ = [
    "DispatchCoordinator",
    "FanoutResult",
    "NotificationFanout",
    "GeoMatcher",
    "MatchPolicy",
    "get_dispatch_coordinator",
]
