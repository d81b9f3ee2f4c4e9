from rest_framework import serializers

from .models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ["id", "title", "body", "data", "read", "notification_type", "created_at"]
        read_only_fields = fields


class UserPushTokenSerializer(serializers.Serializer):
    push_token = serializers.CharField(max_length=255)
