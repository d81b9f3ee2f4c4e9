from django.urls import path
from .views import (
    DriverProfileView,
    DriverStatusView,
    DriverLocationUpdateView,
    DriverPushTokenView,
    DriverActiveOrderView,
    DriverOrderHistoryView,
)

urlpatterns = [
    path("profile/", DriverProfileView.as_view(), name="driver-profile"),
    path("status/", DriverStatusView.as_view(), name="driver-status"),
    path("location/", DriverLocationUpdateView.as_view(), name="driver-location"),
    path("push-token/", DriverPushTokenView.as_view(), name="driver-push-token"),
    path("active-order/", DriverActiveOrderView.as_view(), name="driver-active-order"),
    path("history/", DriverOrderHistoryView.as_view(), name="driver-history"),
]
