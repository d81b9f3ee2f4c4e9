from rest_framework import serializers

from .models import User


class UserBasicSerializer(serializers.ModelSerializer):
    """
    Basic user representation used inside order responses.
    """
    class Meta:
        model = User
        fields = ["id", "username", "phone_number", "role"]
        read_only_fields = fields
