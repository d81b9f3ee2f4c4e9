"""
Realtime app for WebSocket communication.

Key Components:
    - consumers/: WebSocket consumers (driver, order tracking)
    - publisher.py: injected channel-layer publisher used by the dispatch services
    - groups.py: channel group naming (driver, user, order, city, drivers)
    - middleware.py: JWT/Cookie authentication for WebSocket connections

Usage:
    from realtime.consumers import DriverConsumer, OrderConsumer
    from realtime.publisher import ChannelLayerPublisher, get_publisher
    from realtime.groups import driver_group, city_group
"""
