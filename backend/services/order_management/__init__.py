"""
Order management service - Core order lifecycle operations.

This module handles:
    - Creating orders (line-item snapshot and bill)
    - Accepting orders (atomic, exactly one winner)
    - Advancing order status and crediting drivers
    - Cancelling orders
    - Querying orders
"""

from .order_lifecycle import (
    OrderResult,
    compute_bill,
    create_order,
    accept_order,
    advance_order_status,
    cancel_order,
    get_dispatch_profile,
    get_customer_orders,
    get_driver_active_order,
    get_driver_history,
    get_order_for_participant,
)

from .exceptions import (
    OrderError,
    OrderNotFoundError,
    MerchantNotFoundError,
    InvalidOrderError,
    OrderAlreadyTakenError,
    NotAuthorizedError,
    InvalidTransitionError,
    DriverNotEligibleError,
)

__all__ = [
    # Lifecycle operations
    "OrderResult",
    "compute_bill",
    "create_order",
    "accept_order",
    "advance_order_status",
    "cancel_order",
    "get_dispatch_profile",
    "get_customer_orders",
    "get_driver_active_order",
    "get_driver_history",
    "get_order_for_participant",
    # Exceptions
    "OrderError",
    "OrderNotFoundError",
    "MerchantNotFoundError",
    "InvalidOrderError",
    "OrderAlreadyTakenError",
    "NotAuthorizedError",
    "InvalidTransitionError",
    "DriverNotEligibleError",
]
