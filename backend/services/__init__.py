"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP/WebSocket layer.

Modules:
    - order_management: Order lifecycle operations and their exceptions
    - dispatch: Driver matching, offer fanout and orchestration
"""
