"""
Real-time event publisher.

The dispatch services never grab the channel layer themselves; they are handed
a publisher when they are built. The ASGI entry point connects the
process-wide publisher at startup and closes it at shutdown.
"""

import logging
from typing import Any, Dict, Iterable, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


class ChannelLayerPublisher:
    """
    Best-effort publisher on top of the Django Channels layer.

    Usage:
        publisher = ChannelLayerPublisher()
        publisher.connect()
        publisher.publish("order_42", {"type": "order_accepted", ...})
        publisher.close()
    """

    def __init__(self, alias: str = "default", channel_layer=None):
        self.alias = alias
        self._layer = channel_layer

    @property
    def connected(self) -> bool:
        return self._layer is not None

    def connect(self):
        """Resolve the configured channel layer; safe to call more than once."""
        if self._layer is None:
            self._layer = get_channel_layer(self.alias)
            if self._layer is None:
                logger.warning("No channel layer configured under alias %r", self.alias)
            else:
                logger.info("Publisher connected to %s", type(self._layer).__name__)
        return self._layer

    def close(self):
        """Release layer connections (Redis pools) if the backend holds any."""
        layer, self._layer = self._layer, None
        if layer is None:
            return

        flush = getattr(layer, "close_pools", None)
        if flush is None:
            return
        try:
            async_to_sync(flush)()
        except Exception:
            logger.exception("Failed to close channel layer pools")

    def publish(self, group: str, payload: Dict[str, Any]) -> bool:
        """
        Send one event to a group. Never raises.

        Returns:
            True if the event was handed to the layer, False otherwise
        """
        if not group:
            return False

        layer = self._layer or self.connect()
        if layer is None:
            return False

        try:
            logger.debug("WS -> %s: %s", group, payload.get("type"))
            async_to_sync(layer.group_send)(group, payload)
        except Exception:
            logger.exception("Failed to publish %s to %s", payload.get("type"), group)
            return False
        return True

    def publish_many(self, groups: Iterable[str], payload: Dict[str, Any]) -> int:
        """Send the same event to several groups; returns how many succeeded."""
        return sum(1 for group in groups if self.publish(group, payload))


_publisher: Optional[ChannelLayerPublisher] = None


def get_publisher() -> ChannelLayerPublisher:
    """Get singleton ChannelLayerPublisher instance."""
    global _publisher
    if _publisher is None:
        _publisher = ChannelLayerPublisher()
    return _publisher
