from django.db.models import Q
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .models import Notification
from .push import is_expo_push_token
from .serializers import NotificationSerializer, UserPushTokenSerializer


def _inbox(user):
    """Notifications addressed to the user, as a customer or as a driver."""
    query = Q(recipient_kind=Notification.RECIPIENT_USER, recipient_id=user.pk)
    profile = getattr(user, "driver_profile", None)
    if profile is not None:
        query |= Q(recipient_kind=Notification.RECIPIENT_DRIVER, recipient_id=profile.pk)
    return Notification.objects.filter(query)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def list_notifications(request):
    """Latest notifications of the current user (?unread=1 for unread only)."""
    inbox = _inbox(request.user)
    if request.query_params.get("unread") in ("1", "true"):
        inbox = inbox.filter(read=False)

    notifications = inbox[:100]
    return Response({
        "unread_count": _inbox(request.user).filter(read=False).count(),
        "notifications": NotificationSerializer(notifications, many=True).data,
    })


@api_view(["PUT"])
@permission_classes([IsAuthenticated])
def mark_notification_read(request, notification_id):
    """Flip the read flag; only the recipient may do this."""
    notification = Notification.objects.filter(pk=notification_id).first()
    if notification is None:
        return Response({"error": "Notification not found"}, status=status.HTTP_404_NOT_FOUND)

    if not notification.is_addressed_to(request.user):
        return Response({"error": "Not your notification"}, status=status.HTTP_403_FORBIDDEN)

    if not notification.read:
        notification.read = True
        notification.save(update_fields=["read"])

    return Response(NotificationSerializer(notification).data)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
def register_push_token(request):
    """Customer device token used for order status pushes."""
    serializer = UserPushTokenSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    token = serializer.validated_data["push_token"]
    if not is_expo_push_token(token):
        return Response(
            {"error": "invalid_push_token", "message": "Not a valid Expo push token"},
            status=status.HTTP_400_BAD_REQUEST,
        )

    request.user.push_token = token
    request.user.save(update_fields=["push_token"])
    return Response({"message": "Push token saved"})
