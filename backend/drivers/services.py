import logging
from datetime import datetime, time, timedelta

from django.db import transaction
from django.utils import timezone

from drivers.models import DriverProfile, DriverSession
from notifications.push import is_expo_push_token

logger = logging.getLogger(__name__)


class DriverBannedError(Exception):
    """Raised when a suspended/blocked/rejected driver tries to go online."""
    pass


class InvalidPushTokenError(Exception):
    pass


# DRIVER ONLINE / OFFLINE
@transaction.atomic
def set_online(profile: DriverProfile, online: bool) -> DriverProfile:
    """
    Toggle driver presence and keep DriverSession rows in step:
    going online opens a session, going offline closes every open one.
    """
    if online and profile.is_banned:
        raise DriverBannedError(f"Your account is {profile.get_status_display().lower()}")

    profile.is_online = online
    profile.save(update_fields=["is_online"])

    open_sessions = profile.sessions.filter(end_time__isnull=True)
    if online:
        if not open_sessions.exists():
            DriverSession.objects.create(driver=profile)
    else:
        now = timezone.now()
        for session in open_sessions:
            session.close(now)

    logger.info("Driver %s is now %s", profile.user_id, "online" if online else "offline")
    return profile


def today_online_hours(profile: DriverProfile, now=None) -> float:
    """Hours spent online since local midnight, counting an open session up to now."""
    now = now or timezone.now()
    midnight = timezone.make_aware(
        datetime.combine(timezone.localdate(now), time.min),
        timezone.get_current_timezone(),
    )

    total = timedelta()
    sessions = profile.sessions.filter(start_time__lt=now).exclude(end_time__lt=midnight)
    for session in sessions:
        start = max(session.start_time, midnight)
        end = min(session.end_time or now, now)
        if end > start:
            total += end - start

    return round(total.total_seconds() / 3600, 2)


def update_driver_location(profile: DriverProfile, lat, lon, city=None):
    """
    Store a new driver position (HTTP fallback and the driver socket).

    A customer watching the driver's active order gets the new position.
    """
    profile.current_latitude = lat
    profile.current_longitude = lon
    profile.last_location_update = timezone.now()
    fields = ["current_latitude", "current_longitude", "last_location_update"]
    if city is not None:
        profile.city = city
        fields.append("city")
    profile.save(update_fields=fields)

    from services.order_management import get_driver_active_order
    active = get_driver_active_order(profile.user)
    if active is not None:
        from realtime.groups import order_group
        from realtime.publisher import get_publisher
        get_publisher().publish(order_group(active.id), {
            "type": "driver_location",
            "order_id": active.id,
            "latitude": float(lat),
            "longitude": float(lon),
        })

    return profile


def update_push_token(profile: DriverProfile, token: str) -> DriverProfile:
    if not is_expo_push_token(token):
        raise InvalidPushTokenError("Not a valid Expo push token")
    profile.push_token = token
    profile.save(update_fields=["push_token"])
    return profile
