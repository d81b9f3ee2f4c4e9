from django.contrib import admin

from drivers.models import DriverProfile, DriverSession
from drivers.services import set_online


class DriverSessionInline(admin.TabularInline):
    model = DriverSession
    extra = 0
    fields = ("start_time", "end_time", "duration")
    readonly_fields = fields
    can_delete = False
    max_num = 0


@admin.register(DriverProfile)
class DriverProfileAdmin(admin.ModelAdmin):
    """Account status is set here; suspending a driver also takes them offline"""

    list_display = ("user", "status", "is_online", "city_token", "vehicle_type", "wallet_balance", "total_orders")
    list_filter = ("status", "is_online", "vehicle_type", "city_token")
    search_fields = ("user__username", "user__phone_number", "vehicle_number", "city")
    readonly_fields = ("city_token", "last_location_update", "wallet_balance", "lifetime_earnings", "total_orders")
    inlines = [DriverSessionInline]
    actions = ["force_offline"]

    def save_model(self, request, obj, form, change):
        super().save_model(request, obj, form, change)
        if obj.is_banned and obj.is_online:
            set_online(obj, False)

    @admin.action(description="Take selected drivers offline")
    def force_offline(self, request, queryset):
        for profile in queryset.filter(is_online=True):
            set_online(profile, False)
