"""Driver WebSocket consumer for order offers, location updates and presence."""

import logging
from typing import Dict, Any

from channels.db import database_sync_to_async

from .base import BaseConsumer
from realtime.groups import DRIVERS_GROUP, city_group, driver_group

logger = logging.getLogger(__name__)


class DriverConsumer(BaseConsumer):
    """
    WebSocket consumer for drivers.

    Groups joined:
        - driver_<user_id>: offers targeted at this driver
        - drivers: withdraw events for every driver
        - city_<token>: offers for the driver's city, only while the driver
          is online and approved for dispatch

    Handles:
        - driver_location_update (latitude, longitude, optional city)
        - driver_online_toggle (is_online)
    """

    message_handlers = {
        "driver_location_update": "_handle_location_update",
        "driver_online_toggle": "_handle_online_toggle",
    }

    async def on_connect(self):
        """Set up driver-specific groups on connection."""
        if self.role != "driver":
            await self.send_error("This endpoint is for delivery partners only")
            await self.close()
            return

        profile = await self._get_profile()
        if profile is None or profile.is_banned:
            await self.send_error("Your account cannot receive orders")
            await self.close()
            return

        await self._join_group(driver_group(self.user_id))
        await self._join_group(DRIVERS_GROUP)

        self.current_city_group = ""
        self.city_token = profile.city_token
        self.receiving_offers = profile.is_online and profile.can_take_orders
        await self._sync_city_group()

        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
            "is_online": profile.is_online,
            "city": profile.city_token,
            "message": "Driver connected successfully",
        })

    async def _sync_city_group(self):
        """Be in exactly the city group offers should reach, or none."""
        wanted = city_group(self.city_token) if self.receiving_offers else ""
        if wanted == self.current_city_group:
            return
        if self.current_city_group:
            await self._leave_group(self.current_city_group)
        if wanted:
            await self._join_group(wanted)
        self.current_city_group = wanted

    # ---------------------- Message Handlers ----------------------

    async def _handle_location_update(self, data: Dict[str, Any]):
        lat = data.get("latitude")
        lon = data.get("longitude")

        if lat is None or lon is None:
            await self.send_error("driver_location_update requires latitude and longitude")
            return

        try:
            lat = float(lat)
            lon = float(lon)
        except (TypeError, ValueError):
            await self.send_error("latitude and longitude must be numbers")
            return

        self.city_token = await self._update_location(lat, lon, data.get("city"))
        await self._sync_city_group()

        logger.debug("Driver %s location update: lat=%s, lon=%s", self.user_id, lat, lon)
        await self.send_success("location_updated", latitude=lat, longitude=lon, city=self.city_token)

    async def _handle_online_toggle(self, data: Dict[str, Any]):
        online = data.get("is_online")
        if not isinstance(online, bool):
            await self.send_error("is_online must be true or false")
            return

        error, profile = await self._set_online(online)
        if error:
            await self.send_error(error)
            return

        # Offline drivers stop hearing city offers until they come back
        self.city_token = profile.city_token
        self.receiving_offers = profile.is_online and profile.can_take_orders
        await self._sync_city_group()

        await self.send_success("online_status_updated", is_online=online)

    # ---------------------- Event Handlers (from group_send) ----------------------

    async def order_offer(self, event):
        """New order this driver can accept."""
        await self._relay(event, "new_order", ("order_id",), order="order_data")

    async def order_withdrawn(self, event):
        """Order was taken or cancelled; the client drops it from its list."""
        await self._relay(event, "order_withdrawn", ("order_id", "reason"))

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _get_profile(self):
        from drivers.models import DriverProfile
        return DriverProfile.objects.filter(user_id=self.user_id).first()

    @database_sync_to_async
    def _update_location(self, lat: float, lon: float, city=None) -> str:
        from drivers.models import DriverProfile
        from drivers.services import update_driver_location

        profile = DriverProfile.objects.select_related("user").get(user_id=self.user_id)
        update_driver_location(profile, lat, lon, city)
        return profile.city_token

    @database_sync_to_async
    def _set_online(self, online: bool):
        """Returns (error message or None, profile)."""
        from drivers.models import DriverProfile
        from drivers.services import DriverBannedError, set_online

        profile = DriverProfile.objects.get(user_id=self.user_id)
        try:
            set_online(profile, online)
        except DriverBannedError as exc:
            return str(exc), profile
        return None, profile
