import logging

import redis
from django.conf import settings
from django.db import connection
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from drivers.models import DriverProfile
from orders.models import Order, OrderStatus
from orders.tasks import send_push_notifications_task
from realtime.publisher import get_publisher

logger = logging.getLogger(__name__)


def _check_database():
    with connection.cursor() as cursor:
        cursor.execute("SELECT 1")
    return {
        "placed_orders": Order.objects.filter(status=OrderStatus.PLACED, driver__isnull=True).count(),
        "online_drivers": DriverProfile.objects.filter(is_online=True).count(),
    }


def _check_redis():
    url = getattr(settings, "REDIS_URL", None) or settings.CELERY_BROKER_URL
    redis.Redis.from_url(url, socket_timeout=3).ping()


def _check_channel_layer():
    publisher = get_publisher()
    if publisher.connect() is None:
        raise RuntimeError("no channel layer configured")


def _check_push_worker():
    if send_push_notifications_task.name not in send_push_notifications_task.app.tasks:
        raise RuntimeError("push task not registered")


HEALTH_CHECKS = (
    ("database", _check_database),
    ("redis", _check_redis),
    ("channels", _check_channel_layer),
    ("celery", _check_push_worker),
)


@api_view(["GET"])
@permission_classes([AllowAny])
def health_check(request):
    """Readiness of the stores and transports dispatch depends on. 503 if any is down."""
    services = {}
    dispatch = {}
    healthy = True

    for name, check in HEALTH_CHECKS:
        try:
            details = check()
        except Exception as e:
            logger.warning("Health check %s failed: %s", name, e)
            services[name] = f"unhealthy: {e}"
            healthy = False
            continue
        services[name] = "healthy"
        if details:
            dispatch.update(details)

    return Response(
        {
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": timezone.now().isoformat(),
            "services": services,
            "dispatch": dispatch,
        },
        status=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
    )
