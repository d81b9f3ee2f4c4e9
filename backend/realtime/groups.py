"""
Channel-layer group names.

Group names may only contain ASCII letters, digits, hyphens, underscores and
periods, and must stay under 100 characters.
"""

import re

DRIVERS_GROUP = "drivers"

_UNSAFE = re.compile(r"[^a-z0-9_.-]+")


def driver_group(user_id) -> str:
    return f"driver_{user_id}"


def user_group(user_id) -> str:
    return f"user_{user_id}"


def order_group(order_id) -> str:
    return f"order_{order_id}"


def city_group(city_token: str) -> str:
    """Shared group of all drivers in one canonical city, '' if there is no city."""
    slug = _UNSAFE.sub("-", (city_token or "").lower()).strip("-")
    if not slug:
        return ""
    return f"city_{slug}"[:90]
