import uuid

from django.conf import settings
from django.db import models


class Payment(models.Model):
    """One attempt to collect money for a booking, mirrored from a gateway payment intent."""

    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    STATUSES = [
        (PENDING, "Pending"),
        (PROCESSING, "Processing"),
        (PAID, "Paid"),
        (FAILED, "Failed"),
        (CANCELLED, "Cancelled"),
        (REFUNDED, "Refunded"),
    ]

    booking = models.ForeignKey('bookings.Booking', on_delete=models.CASCADE, related_name='payments')
    payment_intent_id = models.CharField(max_length=200, unique=True)
    payment_method_id = models.CharField(max_length=200, blank=True)
    payment_method = models.CharField(max_length=20, blank=True)
    schedule = models.CharField(max_length=20, blank=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=10, default='PHP')
    status = models.CharField(max_length=20, choices=STATUSES, default=PENDING)
    failure_reason = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['status'], name='payments_pa_status_3f2c1a_idx'),
            models.Index(fields=['created_at'], name='payments_pa_created_8b41d0_idx'),
        ]

    def __str__(self):
        return f"{self.payment_intent_id} ({self.status})"


class CheckoutSession(models.Model):
    """Server-side home of one payment UI session's orchestrator state."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    booking = models.ForeignKey('bookings.Booking', on_delete=models.CASCADE, related_name='checkout_sessions')
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='checkout_sessions',
    )
    state = models.JSONField(default=dict)
    # Bumped on every write; a write against an older version is rejected.
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Checkout {self.id} for booking #{self.booking_id}"
