from django.contrib import admin
from django.urls import path, include
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check), # Health check endpoint

    # Authentication endpoints (at /api/auth/)
    path('api/auth/token/', TokenObtainPairView.as_view(), name='token-obtain'),
    path('api/auth/token/refresh/', TokenRefreshView.as_view(), name='token-refresh'),

    # Driver APIs (driver profile, online toggle, location, history)
    path('api/driver/', include('drivers.urls')),

    # Order endpoints (at /api/orders/): create, accept, status, cancel, available
    path('api/orders/', include('orders.urls')),

    # Notification inbox
    path('api/notifications/', include('notifications.urls')),
]
