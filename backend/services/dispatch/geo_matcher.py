"""
Find candidate drivers for an order.

Two passes over eligible drivers (online, in an eligible account status):

1. Primary: drivers within the candidate radius of the pickup point whose
   canonical city matches the merchant's. If either side has no city, only
   distance counts.
2. Fallback: when the primary pass is too thin, or the merchant's city is in
   the broadening set, every eligible driver of that city is added regardless
   of distance.

Candidates are all notified at once; the returned order carries no priority.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Iterable, List, Optional, Tuple

from django.conf import settings

from common.utils import bounding_box, calculate_distance, normalize_city, same_city, within_radius
from drivers.models import DriverProfile, dispatch_statuses

logger = logging.getLogger(__name__)


@dataclass
class MatchPolicy:
    """Tunable dispatch parameters, read from settings.DISPATCH."""
    radius_m: float = 5000
    broadcast_cities: Tuple[str, ...] = ()
    min_primary_candidates: int = 1
    eligible_statuses: Tuple[str, ...] = (DriverProfile.STATUS_ACTIVE,)
    available_window: timedelta = field(default_factory=lambda: timedelta(hours=3))

    @classmethod
    def from_settings(cls) -> "MatchPolicy":
        config = getattr(settings, "DISPATCH", {})
        return cls(
            radius_m=float(config.get("CANDIDATE_RADIUS_METERS", 5000)),
            broadcast_cities=tuple(
                token for token in (normalize_city(c) for c in config.get("BROADCAST_CITIES", ())) if token
            ),
            min_primary_candidates=int(config.get("MIN_PRIMARY_CANDIDATES", 1)),
            eligible_statuses=dispatch_statuses(),
            available_window=timedelta(hours=float(config.get("AVAILABLE_ORDERS_WINDOW_HOURS", 3))),
        )

    def broadens(self, city_token: str) -> bool:
        return bool(city_token) and city_token in self.broadcast_cities


class GeoMatcher:
    """
    Candidate driver lookup.

    Usage:
        matcher = GeoMatcher()
        drivers = matcher.find_candidates(23.6, 72.4, "Mehsana")
    """

    def __init__(self, policy: Optional[MatchPolicy] = None):
        self._policy = policy

    @property
    def policy(self) -> MatchPolicy:
        # Read lazily so override_settings in tests takes effect
        return self._policy or MatchPolicy.from_settings()

    # ---------------------- Internal helpers ----------------------

    def eligible_drivers(self, policy: Optional[MatchPolicy] = None):
        policy = policy or self.policy
        return (
            DriverProfile.objects.select_related("user")
            .filter(is_online=True, status__in=policy.eligible_statuses)
            .exclude(status__in=DriverProfile.BANNED_STATUSES)
        )

    def _nearby(self, policy: MatchPolicy, lat: float, lon: float, city_token: str) -> List[Tuple[DriverProfile, float]]:
        min_lat, max_lat, min_lon, max_lon = bounding_box(lat, lon, policy.radius_m)
        queryset = self.eligible_drivers(policy).filter(
            current_latitude__isnull=False,
            current_longitude__isnull=False,
            current_latitude__gte=min_lat,
            current_latitude__lte=max_lat,
            current_longitude__gte=min_lon,
            current_longitude__lte=max_lon,
        )

        nearby = []
        for profile in queryset:
            # City filter only applies when both sides know their city
            if city_token and profile.city_token and profile.city_token != city_token:
                continue
            distance = calculate_distance(
                lat, lon,
                float(profile.current_latitude),
                float(profile.current_longitude),
            )
            if distance <= policy.radius_m:
                nearby.append((profile, distance))

        nearby.sort(key=lambda item: item[1])
        return nearby

    # ---------------------- Public API ----------------------

    def find_candidates(
        self,
        pickup_lat: Optional[float],
        pickup_lon: Optional[float],
        merchant_city: Optional[str],
    ) -> List[DriverProfile]:
        """
        Return eligible drivers for a pickup point, de-duplicated.

        Primary matches come first (closest first), fallback additions after.
        """
        policy = self.policy
        city_token = normalize_city(merchant_city)

        primary: List[DriverProfile] = []
        if pickup_lat is not None and pickup_lon is not None:
            primary = [
                profile for profile, _ in
                self._nearby(policy, float(pickup_lat), float(pickup_lon), city_token)
            ]

        candidates = list(primary)
        needs_fallback = len(primary) < policy.min_primary_candidates or policy.broadens(city_token)

        if needs_fallback and city_token:
            seen = {profile.pk for profile in primary}
            for profile in self.eligible_drivers(policy).filter(city_token=city_token).order_by("pk"):
                if profile.pk not in seen:
                    seen.add(profile.pk)
                    candidates.append(profile)

        logger.info(
            "Matched %d candidate(s) for city=%r (primary=%d, fallback=%s, radius=%sm)",
            len(candidates), city_token, len(primary), needs_fallback and bool(city_token), policy.radius_m
        )
        return candidates

    def can_reach(self, profile: DriverProfile, order, policy: Optional[MatchPolicy] = None) -> bool:
        """Driver-side view of the same rules: would this driver be a candidate for this order?"""
        policy = policy or self.policy
        in_city = same_city(order.city_token, profile.city_token)
        city_ok = in_city or not (order.city_token and profile.city_token)

        if city_ok and within_radius(
            order.pickup_latitude, order.pickup_longitude,
            profile.current_latitude, profile.current_longitude,
            policy.radius_m,
        ):
            return True

        # City-wide reach; the per-order primary count is not known from this side
        return in_city

    def orders_within_reach(self, profile: DriverProfile, orders: Iterable) -> List:
        policy = self.policy
        return [order for order in orders if self.can_reach(profile, order, policy)]
