"""
Core order lifecycle operations.

This module owns the order state machine:

    placed -> confirmed -> preparing -> out_for_delivery -> delivered
    placed -> cancelled

Every state change is a single conditional UPDATE keyed on the state the
caller expects the order to be in. Whether the change happened is decided
only by the number of rows the UPDATE affected; any read done afterwards is
used to explain a failure, never to decide it.
"""

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from common.utils.cities import normalize_city
from drivers.models import DriverProfile
from merchants.models import Merchant
from orders.models import Order, OrderItem, OrderStatus, OrderTimelineEntry
from .exceptions import (
    OrderNotFoundError,
    MerchantNotFoundError,
    InvalidOrderError,
    OrderAlreadyTakenError,
    NotAuthorizedError,
    InvalidTransitionError,
    DriverNotEligibleError,
)

logger = logging.getLogger(__name__)

ACTIVE_DRIVER_STATUSES = (
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.OUT_FOR_DELIVERY,
)

# target status -> status the order must currently be in
ADVANCE_FROM = {
    OrderStatus.PREPARING: OrderStatus.CONFIRMED,
    OrderStatus.OUT_FOR_DELIVERY: OrderStatus.PREPARING,
    OrderStatus.DELIVERED: OrderStatus.OUT_FOR_DELIVERY,
}

TIMELINE_DESCRIPTIONS = {
    OrderStatus.PLACED: "Order placed with {merchant}",
    OrderStatus.CONFIRMED: "Order accepted by {driver}",
    OrderStatus.PREPARING: "Order is being prepared",
    OrderStatus.OUT_FOR_DELIVERY: "Order picked up and out for delivery",
    OrderStatus.DELIVERED: "Order delivered",
    OrderStatus.CANCELLED: "Order cancelled by customer",
}

PAYMENT_METHODS = {code for code, _ in Order.PAYMENT_METHOD_CHOICES}

TWO_PLACES = Decimal("0.01")


@dataclass
class OrderResult:
    """Result object for order operations."""
    success: bool
    order: Optional[Order] = None
    message: str = ""
    extra: Optional[Dict[str, Any]] = None


# ===================== Billing =====================

def _billing_config() -> Dict[str, Any]:
    config = getattr(settings, "BILLING", {})
    return {
        "free_delivery_threshold": Decimal(str(config.get("FREE_DELIVERY_THRESHOLD", 200))),
        "delivery_fee": Decimal(str(config.get("DELIVERY_FEE", 40))),
        "tax_rate": Decimal(str(config.get("TAX_RATE", "0.05"))),
        "driver_base_payout": Decimal(str(config.get("DRIVER_BASE_PAYOUT", 30))),
        "default_eta": config.get("DEFAULT_ETA", "30-40 mins"),
    }


def compute_bill(item_total: Decimal) -> Dict[str, Decimal]:
    """
    Compute the bill breakdown for an item subtotal.

    Delivery is free strictly above the threshold; tax is rounded to whole
    currency units.
    """
    config = _billing_config()
    item_total = Decimal(item_total).quantize(TWO_PLACES)

    if item_total > config["free_delivery_threshold"]:
        delivery_fee = Decimal("0")
    else:
        delivery_fee = config["delivery_fee"]

    taxes = (item_total * config["tax_rate"]).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    discount = Decimal("0")
    grand_total = item_total + delivery_fee + taxes - discount

    return {
        "item_total": item_total,
        "delivery_fee": delivery_fee.quantize(TWO_PLACES),
        "taxes": taxes.quantize(TWO_PLACES),
        "discount": discount.quantize(TWO_PLACES),
        "grand_total": grand_total.quantize(TWO_PLACES),
        "driver_payout": (config["driver_base_payout"] + delivery_fee).quantize(TWO_PLACES),
    }


# ===================== Customer Operations =====================

def _snapshot_items(merchant: Merchant, items: Iterable[Dict[str, Any]]) -> List[OrderItem]:
    requested = list(items or [])
    if not requested:
        raise InvalidOrderError("Order must contain at least one item")

    product_ids = []
    for entry in requested:
        try:
            product_ids.append(int(entry["product_id"]))
        except (KeyError, TypeError, ValueError):
            raise InvalidOrderError("Every item needs a valid product_id")

    products = {p.id: p for p in merchant.products.filter(id__in=product_ids)}

    lines = []
    for entry, product_id in zip(requested, product_ids):
        product = products.get(product_id)
        if product is None:
            raise InvalidOrderError(f"Product {product_id} is not sold by {merchant.name}")
        if not product.is_available:
            raise InvalidOrderError(f"{product.name} is currently unavailable")

        try:
            quantity = int(entry.get("quantity", 1))
        except (TypeError, ValueError):
            raise InvalidOrderError("Quantity must be a whole number")
        if quantity < 1:
            raise InvalidOrderError("Quantity must be at least 1")

        lines.append(OrderItem(
            product=product,
            name=product.name,
            unit_price=product.price,
            quantity=quantity,
            line_total=(product.price * quantity).quantize(TWO_PLACES),
        ))
    return lines


@transaction.atomic
def create_order(
    customer,
    merchant_id: int,
    items: Iterable[Dict[str, Any]],
    delivery_address: Optional[Dict[str, Any]] = None,
    payment_method: str = "COD",
) -> OrderResult:
    """
    Create a new order in the placed state.

    Args:
        customer: User model instance (customer)
        merchant_id: ID of the merchant the order is placed with
        items: iterable of {"product_id": ..., "quantity": ...}
        delivery_address: {"street", "city", "latitude", "longitude"}
        payment_method: one of COD, UPI, CARD, WALLET

    Returns:
        OrderResult with the created order

    Raises:
        MerchantNotFoundError: If the merchant does not exist
        InvalidOrderError: If the merchant is closed or the cart is unusable
    """
    merchant = Merchant.objects.filter(pk=merchant_id).first()
    if merchant is None:
        raise MerchantNotFoundError("Merchant not found")
    if not merchant.is_open:
        raise InvalidOrderError(f"{merchant.name} is not accepting orders right now")

    if payment_method not in PAYMENT_METHODS:
        raise InvalidOrderError(f"Unsupported payment method: {payment_method}")

    lines = _snapshot_items(merchant, items)
    bill = compute_bill(sum((line.line_total for line in lines), Decimal("0")))
    address = delivery_address or {}

    if payment_method == "COD":
        payment_status, transaction_id = "pending", ""
    else:
        payment_status, transaction_id = "completed", f"TXN{uuid.uuid4().hex[:12].upper()}"

    order = Order.objects.create(
        customer=customer,
        merchant=merchant,
        status=OrderStatus.PLACED,
        payment_method=payment_method,
        payment_status=payment_status,
        transaction_id=transaction_id,
        customer_name=customer.display_name,
        customer_phone=customer.phone_number or "",
        delivery_street=address.get("street") or "",
        delivery_city=address.get("city") or "",
        delivery_latitude=address.get("latitude"),
        delivery_longitude=address.get("longitude"),
        pickup_latitude=merchant.latitude,
        pickup_longitude=merchant.longitude,
        city_token=merchant.city_token or normalize_city(merchant.city),
        **bill,
    )

    for line in lines:
        line.order = order
    OrderItem.objects.bulk_create(lines)

    _append_timeline(order, OrderStatus.PLACED, merchant=merchant.name)

    logger.info(
        "Order %s placed by user %s with merchant %s (total=%s)",
        order.id, customer.pk, merchant.pk, order.grand_total
    )

    return OrderResult(success=True, order=order, message="Order placed successfully")


@transaction.atomic
def cancel_order(customer, order_id: int, reason: str = "") -> OrderResult:
    """
    Cancel an order by its customer. Only possible while the order is placed.

    Raises:
        OrderNotFoundError: If the order does not exist
        NotAuthorizedError: If the order belongs to another customer
        InvalidTransitionError: If the order has left the placed state
    """
    now = timezone.now()
    updated = Order.objects.filter(
        pk=order_id,
        customer=customer,
        status=OrderStatus.PLACED,
        driver__isnull=True,
    ).update(
        status=OrderStatus.CANCELLED,
        cancelled_at=now,
        updated_at=now,
        cancellation_reason=reason or "",
    )

    if updated != 1:
        current = Order.objects.filter(pk=order_id).values("customer_id", "status").first()
        if current is None:
            raise OrderNotFoundError("Order not found")
        if current["customer_id"] != customer.pk:
            raise NotAuthorizedError("You can only cancel your own orders")
        raise InvalidTransitionError(
            f"Cannot cancel - order is already {current['status']}",
            status=current["status"],
        )

    order = Order.objects.get(pk=order_id)
    description = TIMELINE_DESCRIPTIONS[OrderStatus.CANCELLED]
    if reason:
        description = f"{description}: {reason}"
    OrderTimelineEntry.objects.create(order=order, status=OrderStatus.CANCELLED, description=description[:255])

    logger.info("Order %s cancelled by customer %s", order_id, customer.pk)

    return OrderResult(success=True, order=order, message="Order cancelled successfully")


def get_customer_orders(customer):
    """Customer's orders, newest first."""
    return (
        Order.objects.filter(customer=customer)
        .select_related("merchant")
        .prefetch_related("items")
    )


# ===================== Driver Operations =====================

def get_dispatch_profile(driver) -> DriverProfile:
    """
    Return the driver's profile if they may take part in dispatch.

    Raises:
        DriverNotEligibleError: No profile, or an account that is not approved
            for dispatch (still onboarding, pending review, or banned)
    """
    try:
        profile = driver.driver_profile
    except DriverProfile.DoesNotExist:
        raise DriverNotEligibleError("Driver profile not found")

    if profile.is_banned:
        raise DriverNotEligibleError(
            f"Your account is {profile.get_status_display().lower()}. Contact support."
        )
    if not profile.can_take_orders:
        raise DriverNotEligibleError(
            f"Your account is not approved for orders yet ({profile.get_status_display()})."
        )
    return profile


@transaction.atomic
def accept_order(driver, order_id: int) -> OrderResult:
    """
    Accept a placed order. Exactly one concurrent caller wins.

    Args:
        driver: User model instance (driver)
        order_id: ID of the order to accept

    Returns:
        OrderResult with the accepted order

    Raises:
        DriverNotEligibleError: If the driver may not accept orders
        OrderNotFoundError: If the order does not exist
        OrderAlreadyTakenError: If another driver won the order
        InvalidTransitionError: If the order was cancelled before anyone accepted
    """
    profile = get_dispatch_profile(driver)
    now = timezone.now()

    updated = Order.objects.filter(
        pk=order_id,
        driver__isnull=True,
        status=OrderStatus.PLACED,
    ).update(
        driver=driver,
        status=OrderStatus.CONFIRMED,
        accepted_at=now,
        updated_at=now,
        driver_name=driver.display_name[:150],
        driver_phone=driver.phone_number or "",
        driver_vehicle_number=profile.vehicle_number,
        driver_vehicle_type=profile.vehicle_type,
        eta=_billing_config()["default_eta"],
    )

    if updated != 1:
        current = Order.objects.filter(pk=order_id).values("driver_id", "status").first()
        if current is None:
            raise OrderNotFoundError("Order not found")
        if current["driver_id"] is None:
            raise InvalidTransitionError(
                f"Order is {current['status']} and can no longer be accepted",
                status=current["status"],
            )
        logger.info(
            "Driver %s lost accept race for order %s (winner=%s)",
            driver.pk, order_id, current["driver_id"]
        )
        raise OrderAlreadyTakenError(order_id, current["driver_id"], current["status"])

    order = Order.objects.select_related("merchant", "customer").get(pk=order_id)
    _append_timeline(order, OrderStatus.CONFIRMED, driver=order.driver_name or driver.username)

    logger.info("Order %s accepted by driver %s", order_id, driver.pk)

    return OrderResult(
        success=True,
        order=order,
        message="Order accepted! Head to the pickup location."
    )


@transaction.atomic
def advance_order_status(actor, order_id: int, target_status: str) -> OrderResult:
    """
    Move an accepted order one step forward.

    The assigned driver may make every step; the merchant owner may also move
    a confirmed order to preparing. Delivering credits the driver once.

    Raises:
        OrderNotFoundError: If the order does not exist
        NotAuthorizedError: If the actor may not advance this order
        InvalidTransitionError: If the step does not follow the state machine
    """
    if target_status not in ADVANCE_FROM:
        raise InvalidTransitionError(f"Status cannot be set to '{target_status}' here")

    order = Order.objects.select_related("merchant").filter(pk=order_id).first()
    if order is None:
        raise OrderNotFoundError("Order not found")

    is_driver = order.driver_id is not None and order.driver_id == actor.pk
    is_merchant = (
        target_status == OrderStatus.PREPARING
        and order.merchant.owner_id is not None
        and order.merchant.owner_id == actor.pk
    )
    if not (is_driver or is_merchant):
        raise NotAuthorizedError("Only the assigned driver can update this order")

    expected = ADVANCE_FROM[target_status]
    now = timezone.now()
    changes = {"status": target_status, "updated_at": now}
    if target_status == OrderStatus.DELIVERED:
        changes["delivered_at"] = now
        if order.payment_method == "COD":
            changes["payment_status"] = "completed"

    updated = Order.objects.filter(
        pk=order_id,
        status=expected,
        driver_id=order.driver_id,
    ).update(**changes)

    if updated != 1:
        current = Order.objects.filter(pk=order_id).values_list("status", flat=True).first()
        raise InvalidTransitionError(
            f"Cannot move order from {current} to {target_status}",
            status=current,
        )

    _append_timeline(order, target_status)

    if target_status == OrderStatus.DELIVERED:
        _credit_driver(order)

    order.refresh_from_db()
    logger.info("Order %s moved %s -> %s by user %s", order_id, expected, target_status, actor.pk)

    return OrderResult(
        success=True,
        order=order,
        message=f"Order is now {order.get_status_display().lower()}"
    )


def get_driver_active_order(driver) -> Optional[Order]:
    """Get driver's current in-flight order."""
    return (
        Order.objects.filter(driver=driver, status__in=ACTIVE_DRIVER_STATUSES)
        .select_related("merchant", "customer")
        .order_by("-accepted_at")
        .first()
    )


def get_driver_history(driver, limit: int = 50):
    """Delivered orders of a driver, most recent first."""
    return (
        Order.objects.filter(driver=driver, status=OrderStatus.DELIVERED)
        .select_related("merchant")
        .order_by("-delivered_at")[:limit]
    )


def get_order_for_participant(user, order_id: int) -> Order:
    """
    Load an order the user is allowed to see.

    Participants are the customer, the assigned driver and the merchant owner.
    Any dispatchable driver may also see an order that is still waiting for one.
    """
    order = (
        Order.objects.select_related("merchant", "customer", "driver")
        .prefetch_related("items", "timeline")
        .filter(pk=order_id)
        .first()
    )
    if order is None:
        raise OrderNotFoundError("Order not found")

    if user.pk in (order.customer_id, order.driver_id, order.merchant.owner_id):
        return order

    if order.status == OrderStatus.PLACED and order.driver_id is None:
        profile = getattr(user, "driver_profile", None)
        if profile is not None and profile.can_take_orders:
            return order

    raise NotAuthorizedError("You are not part of this order")


# ===================== Helper Functions =====================

def _append_timeline(order: Order, status: str, **context) -> OrderTimelineEntry:
    description = TIMELINE_DESCRIPTIONS[status].format(**context)
    return OrderTimelineEntry.objects.create(order=order, status=status, description=description[:255])


def _credit_driver(order: Order) -> None:
    """Add the order payout to the driver's wallet. Runs only after a winning delivered update."""
    payout = order.driver_payout
    credited = DriverProfile.objects.filter(user_id=order.driver_id).update(
        wallet_balance=F("wallet_balance") + payout,
        lifetime_earnings=F("lifetime_earnings") + payout,
        total_orders=F("total_orders") + 1,
    )
    if not credited:
        logger.warning("Order %s delivered but driver %s has no profile to credit", order.id, order.driver_id)
    else:
        logger.info("Credited %s to driver %s for order %s", payout, order.driver_id, order.id)
