from rest_framework import serializers

from accounts.serializers import UserBasicSerializer
from drivers.models import DriverProfile


class DriverProfileSerializer(serializers.ModelSerializer):
    """
    Profile as the driver app shows it. Only vehicle details and the home
    city are editable by the driver; presence, position and money fields
    change through their own endpoints.
    """
    user = UserBasicSerializer(read_only=True)
    today_online_hours = serializers.SerializerMethodField()

    class Meta:
        model = DriverProfile
        fields = (
            "id", "user",
            "vehicle_type", "vehicle_number", "city",
            "status", "is_online", "city_token",
            "current_latitude", "current_longitude", "last_location_update",
            "wallet_balance", "lifetime_earnings", "total_orders",
            "today_online_hours",
        )
        read_only_fields = tuple(
            name for name in fields if name not in ("vehicle_type", "vehicle_number", "city")
        )

    def get_today_online_hours(self, obj):
        from drivers.services import today_online_hours
        return today_online_hours(obj)


class DriverOnlineSerializer(serializers.Serializer):
    is_online = serializers.BooleanField()


class LocationUpdateSerializer(serializers.Serializer):
    latitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-90, max_value=90)
    longitude = serializers.DecimalField(max_digits=10, decimal_places=6, min_value=-180, max_value=180)
    city = serializers.CharField(max_length=100, required=False, allow_blank=True)


class PushTokenSerializer(serializers.Serializer):
    push_token = serializers.CharField(max_length=255)
