from django.db import models
from django.utils import timezone
from django.conf import settings

from common.utils.cities import normalize_city

User = settings.AUTH_USER_MODEL


def dispatch_statuses():
    """Account statuses allowed to receive and accept orders"""
    config = getattr(settings, "DISPATCH", {})
    return tuple(config.get("ELIGIBLE_DRIVER_STATUSES", ("active",)))


class DriverProfile(models.Model):
    """Delivery partner details, online presence and earnings"""
    STATUS_ONBOARDING = 'onboarding'
    STATUS_PENDING = 'pending'
    STATUS_ACTIVE = 'active'
    STATUS_REUPLOAD_REQUIRED = 'reupload_required'
    STATUS_SUSPENDED = 'suspended'
    STATUS_BLOCKED = 'blocked'
    STATUS_REJECTED = 'rejected'

    STATUS_CHOICES = [
        (STATUS_ONBOARDING, 'Onboarding'),
        (STATUS_PENDING, 'Pending Verification'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_REUPLOAD_REQUIRED, 'Re-upload Required'),
        (STATUS_SUSPENDED, 'Suspended'),
        (STATUS_BLOCKED, 'Blocked'),
        (STATUS_REJECTED, 'Rejected'),
    ]

    # Never reachable by dispatch, whatever the eligible-status setting says
    BANNED_STATUSES = (STATUS_SUSPENDED, STATUS_BLOCKED, STATUS_REJECTED)

    VEHICLE_CHOICES = [
        ('bike', 'Bike'),
        ('cycle', 'Cycle'),
        ('electric', 'Electric'),
        ('car', 'Car'),
    ]

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='driver_profile')

    # Vehicle details
    vehicle_type = models.CharField(max_length=20, choices=VEHICLE_CHOICES, default='bike')
    vehicle_number = models.CharField(max_length=20, blank=True)

    # Account state & presence
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ONBOARDING)
    is_online = models.BooleanField(default=False, db_index=True)
    push_token = models.CharField(max_length=255, blank=True)

    # Location (city is free text, city_token is its canonical form)
    city = models.CharField(max_length=100, blank=True)
    city_token = models.CharField(max_length=100, blank=True, db_index=True, editable=False)
    current_latitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    current_longitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    last_location_update = models.DateTimeField(default=timezone.now)

    # Earnings, credited on delivery
    wallet_balance = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    lifetime_earnings = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_orders = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = 'driver_profiles'

    def __str__(self):
        return f"{self.user.username} - {self.vehicle_number or self.vehicle_type}"

    def save(self, *args, **kwargs):
        self.city_token = normalize_city(self.city)
        update_fields = kwargs.get('update_fields')
        if update_fields is not None and 'city' in update_fields:
            kwargs['update_fields'] = set(update_fields) | {'city_token'}
        super().save(*args, **kwargs)

    @property
    def has_location(self):
        return self.current_latitude is not None and self.current_longitude is not None

    @property
    def is_banned(self):
        return self.status in self.BANNED_STATUSES

    @property
    def can_take_orders(self):
        return not self.is_banned and self.status in dispatch_statuses()


class DriverSession(models.Model):
    """One online period of a driver; end_time stays null while online."""
    driver = models.ForeignKey(DriverProfile, on_delete=models.CASCADE, related_name='sessions')
    start_time = models.DateTimeField(default=timezone.now)
    end_time = models.DateTimeField(null=True, blank=True)
    duration = models.PositiveIntegerField(default=0)  # seconds

    class Meta:
        db_table = 'driver_sessions'
        ordering = ['-start_time']
        indexes = [
            models.Index(fields=['driver', '-start_time'], name='driver_session_lookup'),
        ]

    def __str__(self):
        return f"Session #{self.id} - {self.driver} ({'open' if self.end_time is None else 'closed'})"

    @property
    def is_open(self):
        return self.end_time is None

    def close(self, when=None):
        self.end_time = when or timezone.now()
        self.duration = max(int((self.end_time - self.start_time).total_seconds()), 0)
        self.save(update_fields=['end_time', 'duration'])
