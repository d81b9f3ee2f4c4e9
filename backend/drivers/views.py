from rest_framework import status
from rest_framework.exceptions import NotFound, PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.models import User
from drivers import services
from drivers.models import DriverProfile
from drivers.serializers import (
    DriverOnlineSerializer,
    DriverProfileSerializer,
    LocationUpdateSerializer,
    PushTokenSerializer,
)
from orders.serializers import OrderSerializer
from services.order_management import get_driver_active_order, get_driver_history


def require_driver(user) -> DriverProfile:
    """Profile of a delivery partner; 403 for other roles, 404 before onboarding."""
    if getattr(user, "role", None) != User.ROLE_DRIVER:
        raise PermissionDenied("Only delivery partners allowed")
    try:
        return user.driver_profile
    except DriverProfile.DoesNotExist:
        raise NotFound("Driver profile not found")


class DriverAPIView(APIView):
    """Authenticated driver endpoint; ``self.profile`` is loaded before the handler runs."""
    permission_classes = [IsAuthenticated]

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        self.profile = require_driver(request.user)


class DriverProfileView(DriverAPIView):

    def get(self, request):
        return Response(DriverProfileSerializer(self.profile).data)

    def post(self, request):
        serializer = DriverProfileSerializer(self.profile, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)


class DriverStatusView(DriverAPIView):
    """Online/offline toggle. Account status itself is managed by admins."""

    def _presence(self, **extra):
        return {
            "status": self.profile.status,
            "is_online": self.profile.is_online,
            "today_online_hours": services.today_online_hours(self.profile),
            **extra,
        }

    def get(self, request):
        return Response(self._presence())

    def put(self, request):
        serializer = DriverOnlineSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        online = serializer.validated_data["is_online"]

        try:
            services.set_online(self.profile, online)
        except services.DriverBannedError as exc:
            return Response(
                {"error": "driver_not_eligible", "message": str(exc)},
                status=status.HTTP_403_FORBIDDEN,
            )

        return Response(self._presence(message="You are online" if online else "You are offline"))


# Sockets carry most position updates; this is the HTTP fallback
class DriverLocationUpdateView(DriverAPIView):

    def get(self, request):
        profile = self.profile
        return Response({
            "latitude": float(profile.current_latitude) if profile.has_location else None,
            "longitude": float(profile.current_longitude) if profile.has_location else None,
            "city": profile.city,
            "city_token": profile.city_token,
            "updated_at": profile.last_location_update,
        })

    def post(self, request):
        serializer = LocationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        services.update_driver_location(self.profile, data["latitude"], data["longitude"], data.get("city"))

        return Response({
            "message": "Location updated",
            "latitude": float(data["latitude"]),
            "longitude": float(data["longitude"]),
            "city_token": self.profile.city_token,
        })


class DriverPushTokenView(DriverAPIView):

    def post(self, request):
        serializer = PushTokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            services.update_push_token(self.profile, serializer.validated_data["push_token"])
        except services.InvalidPushTokenError as exc:
            return Response(
                {"error": "invalid_push_token", "message": str(exc)},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return Response({"message": "Push token saved"})


class DriverActiveOrderView(DriverAPIView):

    def get(self, request):
        order = get_driver_active_order(request.user)
        if order is None:
            return Response({"message": "No active order"}, status=status.HTTP_404_NOT_FOUND)
        return Response(OrderSerializer(order).data)


class DriverOrderHistoryView(DriverAPIView):
    """Delivered orders plus wallet totals."""

    def get(self, request):
        delivered = list(get_driver_history(request.user))
        return Response({
            "count": len(delivered),
            "orders": OrderSerializer(delivered, many=True).data,
            "wallet_balance": self.profile.wallet_balance,
            "lifetime_earnings": self.profile.lifetime_earnings,
            "total_orders": self.profile.total_orders,
        })
