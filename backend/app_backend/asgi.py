"""
ASGI entry point: HTTP through Django, WebSockets through Channels.

The dispatch publisher is connected here at startup and closed at exit.
"""

import atexit
import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "app_backend.settings")

# Initialise Django before importing anything that touches models
django_asgi_app = get_asgi_application()

from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402
from channels.security.websocket import AllowedHostsOriginValidator  # noqa: E402

from realtime.middleware import JWTAuthMiddlewareStack  # noqa: E402
from realtime.publisher import get_publisher  # noqa: E402
from realtime.routing import websocket_urlpatterns  # noqa: E402

publisher = get_publisher()
publisher.connect()
atexit.register(publisher.close)

application = ProtocolTypeRouter({
    "http": django_asgi_app,
    "websocket": AllowedHostsOriginValidator(
        JWTAuthMiddlewareStack(URLRouter(websocket_urlpatterns))
    ),
})
