from django.db import models
from django.conf import settings

from common.utils.cities import normalize_city


class Merchant(models.Model):
    """Restaurant or grocery store that orders are picked up from"""
    KIND_RESTAURANT = 'restaurant'
    KIND_GROCERY = 'grocery'

    KIND_CHOICES = [
        (KIND_RESTAURANT, 'Restaurant'),
        (KIND_GROCERY, 'Grocery'),
    ]

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='merchants'
    )
    name = models.CharField(max_length=120)
    kind = models.CharField(max_length=20, choices=KIND_CHOICES, default=KIND_RESTAURANT)

    # Pickup address
    street = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=100, blank=True)
    city_token = models.CharField(max_length=100, blank=True, db_index=True, editable=False)
    latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)

    is_open = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'merchants'
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.get_kind_display()})"

    def save(self, *args, **kwargs):
        self.city_token = normalize_city(self.city)
        update_fields = kwargs.get('update_fields')
        if update_fields is not None and 'city' in update_fields:
            kwargs['update_fields'] = set(update_fields) | {'city_token'}
        super().save(*args, **kwargs)


class Product(models.Model):
    """Catalog row; orders snapshot name and price at checkout."""
    merchant = models.ForeignKey(Merchant, on_delete=models.CASCADE, related_name='products')
    name = models.CharField(max_length=150)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    is_available = models.BooleanField(default=True)

    class Meta:
        db_table = 'products'
        ordering = ['name']

    def __str__(self):
        return f"{self.name} - {self.merchant.name}"
