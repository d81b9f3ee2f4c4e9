"""Order tracking WebSocket consumer for real-time order updates."""

import logging
from typing import Dict, Any

from channels.db import database_sync_to_async

from .base import BaseConsumer
from realtime.groups import order_group

logger = logging.getLogger(__name__)


class OrderConsumer(BaseConsumer):
    """
    WebSocket consumer for order tracking.

    Used by customers, drivers and merchants to:
        - Receive order status updates (accepted, status changes, cancelled)
        - Follow the assigned driver's location while the order is in flight
    """

    message_handlers = {
        "start_tracking": "_handle_start_tracking",
        "stop_tracking": "_handle_stop_tracking",
    }

    # ---------------------- Message Handlers ----------------------

    async def _handle_start_tracking(self, data: Dict[str, Any]):
        """Join order_<order_id> after checking the user takes part in the order."""
        order_id = data.get("order_id")

        if order_id is None:
            await self.send_error("start_tracking requires order_id")
            return

        is_valid = await self._validate_order_participant(order_id)
        if not is_valid:
            await self.send_error("You are not authorized to track this order")
            return

        await self._join_group(order_group(order_id))
        await self.send_success("tracking_started", order_id=order_id)

    async def _handle_stop_tracking(self, data: Dict[str, Any]):
        """Leave an order tracking group."""
        order_id = data.get("order_id")

        if order_id is None:
            return

        await self._leave_group(order_group(order_id))
        await self.send_success("tracking_stopped", order_id=order_id)

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _validate_order_participant(self, order_id) -> bool:
        """Customer, assigned driver or merchant owner may track an order."""
        from orders.models import Order

        try:
            order = Order.objects.select_related("merchant").get(id=int(order_id))
        except (Order.DoesNotExist, TypeError, ValueError):
            return False
        return self.user_id in (order.customer_id, order.driver_id, order.merchant.owner_id)
