from django.contrib import admin
from notifications.models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("id", "recipient_kind", "recipient_id", "notification_type", "title", "read", "created_at")
    list_filter = ("recipient_kind", "notification_type", "read")
    search_fields = ("title", "body")
    readonly_fields = ("created_at",)
