"""Custom exceptions for order management.

Every exception carries a machine-readable ``code`` and the HTTP status the
API layer answers with, so views can translate them without a lookup table.
"""


class OrderError(Exception):
    """Base class for order management errors."""
    code = "order_error"
    http_status = 400

    def __init__(self, message="", **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def as_dict(self):
        payload = {"success": False, "error": self.code, "message": self.message}
        payload.update(self.extra)
        return payload


class OrderNotFoundError(OrderError):
    """Raised when an order cannot be found."""
    code = "order_not_found"
    http_status = 404


class MerchantNotFoundError(OrderError):
    """Raised when the merchant of a new order does not exist."""
    code = "merchant_not_found"
    http_status = 404


class InvalidOrderError(OrderError):
    """Raised when order input is unusable (closed merchant, unknown product, empty cart)."""
    code = "invalid_order"
    http_status = 400


class OrderAlreadyTakenError(OrderError):
    """Raised when an accept loses the race to another driver."""
    code = "order_already_taken"
    http_status = 409

    def __init__(self, order_id, winner_id=None, status=None, message=""):
        super().__init__(
            message or "This order was already accepted by another driver",
            order_id=order_id,
            winner_driver_id=winner_id,
            status=status,
        )
        self.order_id = order_id
        self.winner_id = winner_id
        self.status = status


class NotAuthorizedError(OrderError):
    """Raised when the caller is not a participant allowed to act on the order."""
    code = "not_authorized"
    http_status = 403


class InvalidTransitionError(OrderError):
    """Raised when a status change does not follow the order state machine."""
    code = "invalid_transition"
    http_status = 409


class DriverNotEligibleError(OrderError):
    """Raised when a driver may not take part in dispatch (no profile, banned)."""
    code = "driver_not_eligible"
    http_status = 403
