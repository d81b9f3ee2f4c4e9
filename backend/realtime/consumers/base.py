"""Shared WebSocket plumbing: authentication gate, group bookkeeping, message routing."""

import logging
from typing import Any, Dict, Iterable, Set

from channels.generic.websocket import AsyncJsonWebsocketConsumer

from realtime.groups import user_group

logger = logging.getLogger(__name__)


class BaseConsumer(AsyncJsonWebsocketConsumer):
    """
    Authenticated consumer that every socket endpoint builds on.

    Subclasses declare ``message_handlers`` (client message type -> method
    name) and may override ``on_connect`` to join extra groups or refuse the
    connection after it was accepted.
    """

    message_handlers: Dict[str, str] = {}

    async def connect(self):
        self.user = self.scope.get("user")
        if self.user is None or self.user.is_anonymous:
            await self.close()
            return

        self.user_id = self.user.pk
        self.role = getattr(self.user, "role", None)
        self.joined_groups: Set[str] = set()

        await self._join_group(user_group(self.user_id))
        await self.accept()
        await self.on_connect()

    async def on_connect(self):
        await self.send_success("connection_established", user_id=self.user_id, role=self.role)

    async def disconnect(self, close_code):
        for group in list(getattr(self, "joined_groups", ())):
            try:
                await self._leave_group(group)
            except Exception:
                logger.exception("Could not leave %s for user %s", group, getattr(self, "user_id", None))
        logger.debug("Socket closed for user %s (code=%s)", getattr(self, "user_id", None), close_code)

    async def receive_json(self, content, **kwargs):
        msg_type = content.get("type") if isinstance(content, dict) else None
        if not msg_type:
            await self.send_error("Message type is required")
            return

        if msg_type == "ping":
            await self.send_success("pong")
            return

        handler_name = self.message_handlers.get(msg_type)
        if handler_name is None:
            await self.send_error(f"Unknown message type: {msg_type}")
            return

        try:
            await getattr(self, handler_name)(content)
        except Exception:
            logger.exception("Error handling %s from user %s", msg_type, self.user_id)
            await self.send_error(f"Error processing {msg_type}")

    # ---------------------- Groups ----------------------

    async def _join_group(self, group_name: str):
        if not group_name or group_name in self.joined_groups:
            return
        await self.channel_layer.group_add(group_name, self.channel_name)
        self.joined_groups.add(group_name)

    async def _leave_group(self, group_name: str):
        if group_name not in self.joined_groups:
            return
        await self.channel_layer.group_discard(group_name, self.channel_name)
        self.joined_groups.discard(group_name)

    # ---------------------- Outgoing ----------------------

    async def send_error(self, message: str):
        await self.send_json({"type": "error", "message": message})

    async def send_success(self, event_type: str, **fields):
        await self.send_json({"type": event_type, **fields})

    async def _relay(self, event: Dict[str, Any], client_type: str, fields: Iterable[str], **renamed):
        """Forward selected keys of a group event to the client; ``renamed`` maps client key -> event key."""
        payload = {"type": client_type}
        for key in fields:
            payload[key] = event.get(key)
        for client_key, event_key in renamed.items():
            payload[client_key] = event.get(event_key)
        await self.send_json(payload)

    # ---------------------- Order events (group_send) ----------------------

    async def order_accepted(self, event):
        await self._relay(event, "order_accepted", ("order_id", "message"), order="order_data")

    async def order_status_changed(self, event):
        await self._relay(event, "order_status_changed", ("order_id", "status", "message"), order="order_data")

    async def order_cancelled(self, event):
        await self._relay(event, "order_cancelled", ("order_id", "message"))

    async def driver_location(self, event):
        # Only sockets tracking the order are in its group
        await self._relay(event, "driver_location", ("order_id", "latitude", "longitude"))
