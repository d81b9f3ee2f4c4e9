from django.db import models


class Notification(models.Model):
    """
    Persisted copy of every push we send.

    The recipient is a tagged variant: recipient_kind says which table
    recipient_id points into (DriverProfile for drivers, User for customers).
    """
    RECIPIENT_DRIVER = 'driver'
    RECIPIENT_USER = 'user'

    RECIPIENT_CHOICES = [
        (RECIPIENT_DRIVER, 'Driver'),
        (RECIPIENT_USER, 'User'),
    ]

    recipient_kind = models.CharField(max_length=10, choices=RECIPIENT_CHOICES)
    recipient_id = models.PositiveBigIntegerField()

    title = models.CharField(max_length=200)
    body = models.TextField()
    data = models.JSONField(default=dict, blank=True)
    read = models.BooleanField(default=False)
    notification_type = models.CharField(max_length=40, default='SYSTEM')

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'notifications'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['recipient_kind', 'recipient_id', '-created_at'], name='notification_inbox'),
        ]

    def __str__(self):
        return f"Notification #{self.id} -> {self.recipient_kind}:{self.recipient_id} ({self.notification_type})"

    @classmethod
    def for_driver(cls, profile):
        return cls.objects.filter(recipient_kind=cls.RECIPIENT_DRIVER, recipient_id=profile.pk)

    @classmethod
    def for_user(cls, user):
        return cls.objects.filter(recipient_kind=cls.RECIPIENT_USER, recipient_id=user.pk)

    def resolve_recipient(self):
        """Load the recipient row, dispatching on the kind tag."""
        if self.recipient_kind == self.RECIPIENT_DRIVER:
            from drivers.models import DriverProfile
            return DriverProfile.objects.select_related('user').filter(pk=self.recipient_id).first()
        if self.recipient_kind == self.RECIPIENT_USER:
            from django.contrib.auth import get_user_model
            return get_user_model().objects.filter(pk=self.recipient_id).first()
        raise ValueError(f"Unknown recipient kind: {self.recipient_kind}")

    def is_addressed_to(self, user) -> bool:
        """Check whether an authenticated user owns this notification."""
        if self.recipient_kind == self.RECIPIENT_USER:
            return self.recipient_id == user.pk
        profile = getattr(user, 'driver_profile', None)
        return profile is not None and self.recipient_id == profile.pk
