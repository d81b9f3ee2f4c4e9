from django.contrib import admin
from merchants.models import Merchant, Product


@admin.register(Merchant)
class MerchantAdmin(admin.ModelAdmin):
    """Admin panel for restaurants and grocery stores"""

    list_display = ["name", "kind", "city", "city_token", "is_open"]
    list_filter = ["kind", "is_open", "city_token"]
    search_fields = ["name", "city", "owner__username"]
    readonly_fields = ["city_token", "created_at"]


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "merchant", "price", "is_available")
    list_filter = ("is_available",)
    search_fields = ("name", "merchant__name")
