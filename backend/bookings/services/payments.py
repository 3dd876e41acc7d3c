from __future__ import annotations

import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import Sum

from bookings.models import Booking
from payments.models import Payment
from payments.services.amounts import BookingSnapshot

logger = logging.getLogger(__name__)


def record_payment_outcome(booking: Booking) -> Booking:
    """
    Recompute a booking's paid total and payment status from its paid payments.

    A pending booking whose paid total reaches the deposit is approved
    automatically.
    """

    with transaction.atomic():
        booking = Booking.objects.select_for_update().get(pk=booking.pk)
        total_paid = booking.payments.filter(status=Payment.PAID).aggregate(total=Sum("amount"))["total"]
        total_paid = total_paid or Decimal("0.00")

        if total_paid > 0 and total_paid >= booking.total_amount:
            booking.payment_status = Booking.PAID
        elif total_paid > 0:
            booking.payment_status = Booking.PARTIAL
        else:
            booking.payment_status = Booking.UNPAID
        booking.total_paid = total_paid

        update_fields = ["total_paid", "payment_status", "updated_at"]
        deposit = BookingSnapshot.from_booking(booking).deposit
        if booking.booking_status == Booking.STATUS_PENDING and total_paid > 0 and total_paid >= deposit:
            booking.booking_status = Booking.STATUS_APPROVED
            update_fields.append("booking_status")
            logger.info("Booking #%s automatically approved due to payment.", booking.pk)

        booking.save(update_fields=update_fields)
    return booking
