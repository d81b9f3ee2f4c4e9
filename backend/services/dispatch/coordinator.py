"""
Dispatch orchestration.

Ties the order lifecycle to matching and fanout:

    place_order: create -> find candidates -> offer
    accept:      atomic accept -> tell customer -> withdraw from other drivers
    advance:     status step -> tell customer
    cancel:      cancel -> withdraw from drivers

Lifecycle errors propagate to the caller; notification errors never do.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from django.utils import timezone

from orders.models import Order, OrderStatus
from realtime.groups import order_group
from services.order_management import (
    OrderResult,
    create_order,
    accept_order,
    advance_order_status,
    cancel_order,
    get_dispatch_profile,
    DriverNotEligibleError,
)
from .fanout import NotificationFanout
from .geo_matcher import GeoMatcher

logger = logging.getLogger(__name__)

STATUS_MESSAGES = {
    OrderStatus.PREPARING: ("Order is being prepared", "{merchant} is preparing your order."),
    OrderStatus.OUT_FOR_DELIVERY: ("Order on the way", "{driver} picked up your order."),
    OrderStatus.DELIVERED: ("Order delivered", "Enjoy your order from {merchant}!"),
}


class DispatchCoordinator:
    """
    Entry point for every dispatch operation.

    Usage:
        coordinator = DispatchCoordinator(publisher)
        result = coordinator.place_order(customer, merchant_id, items)
        coordinator.accept(driver, result.order.id)
    """

    def __init__(self, publisher, matcher: Optional[GeoMatcher] = None, fanout: Optional[NotificationFanout] = None):
        self.publisher = publisher
        self.matcher = matcher or GeoMatcher()
        self.fanout = fanout or NotificationFanout(publisher)

    # ---------------------- Customer operations ----------------------

    def place_order(
        self,
        customer,
        merchant_id: int,
        items: Iterable[Dict[str, Any]],
        delivery_address: Optional[Dict[str, Any]] = None,
        payment_method: str = "COD",
    ) -> OrderResult:
        result = create_order(customer, merchant_id, items, delivery_address, payment_method)
        order = result.order

        candidates = []
        try:
            candidates = self.matcher.find_candidates(
                order.pickup_latitude,
                order.pickup_longitude,
                order.merchant.city,
            )
            self.fanout.offer(order, candidates, order.city_token)
        except Exception:
            logger.exception("Dispatch fanout failed for order %s", order.id)

        if candidates:
            result.message = "Order placed! Notifying nearby delivery partners..."
        else:
            result.message = "Order placed! Waiting for a delivery partner."
        result.extra = {"driver_candidates": len(candidates)}
        return result

    def cancel(self, customer, order_id: int, reason: str = "") -> OrderResult:
        result = cancel_order(customer, order_id, reason)
        self.fanout.withdraw(order_id, "cancelled")
        self.publisher.publish(
            order_group(order_id),
            {"type": "order_cancelled", "order_id": order_id, "message": "Order was cancelled."},
        )
        return result

    # ---------------------- Driver operations ----------------------

    def accept(self, driver, order_id: int) -> OrderResult:
        """Atomic accept; losers get OrderAlreadyTakenError from the lifecycle."""
        result = accept_order(driver, order_id)
        order = result.order

        self.fanout.notify_customer(
            order,
            "order_accepted",
            "Order accepted",
            f"{order.driver_name or driver.username} is on the way to {order.merchant.name}.",
        )
        self.fanout.withdraw(order_id, "taken")
        return result

    def advance(self, actor, order_id: int, status: str) -> OrderResult:
        result = advance_order_status(actor, order_id, status)
        order = result.order

        title, body = STATUS_MESSAGES[status]
        self.fanout.notify_customer(
            order,
            "order_status_changed",
            title,
            body.format(merchant=order.merchant.name, driver=order.driver_name or "Your delivery partner"),
        )
        return result

    def available_orders(self, driver) -> List[Order]:
        """
        Orders a driver can pick up right now.

        Re-derived on every call: placed, unassigned, inside the recency window
        and within reach of the driver under the matching rules.
        """
        try:
            profile = get_dispatch_profile(driver)
        except DriverNotEligibleError:
            return []

        policy = self.matcher.policy
        if not profile.is_online or profile.status not in policy.eligible_statuses:
            return []

        since = timezone.now() - policy.available_window
        recent = (
            Order.objects.filter(
                status=OrderStatus.PLACED,
                driver__isnull=True,
                created_at__gte=since,
            )
            .select_related("merchant", "customer")
            .prefetch_related("items")
            .order_by("-created_at")
        )
        return self.matcher.orders_within_reach(profile, recent)
