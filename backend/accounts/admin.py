from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from accounts.models import User

CONTACT_FIELDS = ("role", "phone_number", "push_token")


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Customers, delivery partners and merchant owners share one user table"""

    list_display = ("username", "get_full_name", "role", "phone_number", "has_push_token", "is_active")
    list_filter = ("role", "is_active", "is_staff")
    search_fields = ("username", "first_name", "last_name", "phone_number")
    ordering = ("-date_joined",)

    fieldsets = BaseUserAdmin.fieldsets + (("Role & contact", {"fields": CONTACT_FIELDS}),)
    add_fieldsets = BaseUserAdmin.add_fieldsets + (("Role & contact", {"fields": ("role", "phone_number")}),)

    @admin.display(boolean=True, description="Push")
    def has_push_token(self, obj):
        return bool(obj.push_token)
