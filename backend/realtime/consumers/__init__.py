"""Realtime consumers for WebSocket communication."""

from .base import BaseConsumer
from .driver_consumer import DriverConsumer
from .order_consumer import OrderConsumer

__all__ = [
    "BaseConsumer",
    "DriverConsumer",
    "OrderConsumer",
]
