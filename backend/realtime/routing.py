"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.driver_consumer import DriverConsumer
from .consumers.order_consumer import OrderConsumer

websocket_urlpatterns = [
    # Driver-specific WebSocket endpoint: offers, withdrawals, location, presence
    # URL: ws://localhost:8000/ws/driver/
    re_path(
        r"ws/driver/$",
        DriverConsumer.as_asgi(),
        name="driver-ws"
    ),

    # Order tracking WebSocket endpoint (customer, driver, merchant)
    # URL: ws://localhost:8000/ws/order/
    re_path(
        r"ws/order/$",
        OrderConsumer.as_asgi(),
        name="order-ws"
    ),
]
