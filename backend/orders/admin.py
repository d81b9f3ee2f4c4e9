"""Tells what to show in the Django admin interface for orders app"""

from django.contrib import admin
from .models import Order, OrderItem, OrderTimelineEntry


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ("product", "name", "unit_price", "quantity", "line_total")
    can_delete = False


class OrderTimelineInline(admin.TabularInline):
    model = OrderTimelineEntry
    extra = 0
    readonly_fields = ("status", "description", "created_at")
    can_delete = False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Order admin"""
    list_display = ['id', 'customer', 'merchant', 'driver', 'status', 'grand_total', 'created_at', 'accepted_at', 'delivered_at']
    list_filter = ['status', 'payment_method', 'city_token', 'created_at']
    search_fields = ['customer__username', 'driver__username', 'merchant__name', 'delivery_street']
    readonly_fields = [
        'item_total', 'delivery_fee', 'taxes', 'discount', 'grand_total', 'driver_payout',
        'created_at', 'accepted_at', 'delivered_at', 'cancelled_at',
    ]
    date_hierarchy = 'created_at'
    inlines = [OrderItemInline, OrderTimelineInline]
