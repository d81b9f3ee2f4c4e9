from django.urls import path
from . import views

app_name = "notifications"

urlpatterns = [
    path("", views.list_notifications, name="notification-list"),
    path("<int:notification_id>/read/", views.mark_notification_read, name="notification-read"),
    path("push-token/", views.register_push_token, name="push-token"),
]
