# orders/permissions.py
from rest_framework.permissions import BasePermission

from accounts.models import User


def _role(request):
    user = getattr(request, "user", None)
    if not user or not user.is_authenticated:
        return None
    return getattr(user, "role", None)


class IsCustomer(BasePermission):
    """
    Allows access only to users with role == 'customer'.
    Keeps role check logic centralized.
    """
    message = "Only customers can do this"

    def has_permission(self, request, view):
        return _role(request) == User.ROLE_CUSTOMER


class IsDriver(BasePermission):
    """Allows access only to users with role == 'driver'."""
    message = "Only delivery partners can do this"

    def has_permission(self, request, view):
        return _role(request) == User.ROLE_DRIVER


class IsDispatchableDriver(IsDriver):
    """
    Driver whose account status is approved for dispatch. Onboarding,
    pending and banned accounts are refused.
    Checked before any dispatch operation runs.
    """
    message = "Your delivery partner account cannot take orders"

    def has_permission(self, request, view):
        if not super().has_permission(request, view):
            return False
        profile = getattr(request.user, "driver_profile", None)
        return profile is not None and profile.can_take_orders
