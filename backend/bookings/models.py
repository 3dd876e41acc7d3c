from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models


class Booking(models.Model):
    """A client's booking of an event package; the amounts it owes are derived from it."""

    STATUS_PENDING = "Pending"
    STATUS_APPROVED = "Approved"
    STATUS_CONFIRMED = "Confirmed"
    STATUS_COMPLETED = "Completed"
    STATUS_CANCELLED = "Cancelled"
    BOOKING_STATUSES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_APPROVED, "Approved"),
        (STATUS_CONFIRMED, "Confirmed"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"
    REFUNDED = "refunded"
    PAYMENT_STATUSES = [
        (UNPAID, "Unpaid"),
        (PARTIAL, "Partial"),
        (PAID, "Paid"),
        (REFUNDED, "Refunded"),
    ]

    client = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="bookings",
    )
    package_name = models.CharField(max_length=200)
    event_date = models.DateField(null=True, blank=True)
    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    deposit_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    total_paid = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    booking_status = models.CharField(max_length=12, choices=BOOKING_STATUSES, default=STATUS_PENDING)
    payment_status = models.CharField(max_length=12, choices=PAYMENT_STATUSES, default=UNPAID)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "id"]

    def __str__(self):
        return f"{self.package_name} booking #{self.pk}"

    def clean(self):
        super().clean()
        if self.deposit_amount is not None and self.deposit_amount > self.total_amount:
            raise ValidationError({"deposit_amount": "Deposit cannot exceed the total amount."})

    @property
    def remaining_balance(self) -> Decimal:
        return max(Decimal("0.00"), self.total_amount - self.total_paid)
