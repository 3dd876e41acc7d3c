import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from bookings.models import Booking


@pytest.mark.django_db
def test_devseed_creates_bookings_in_each_payment_state(settings):
    settings.DEBUG = True

    call_command("devseed")
    call_command("devseed")

    bookings = Booking.objects.filter(client__username="client")
    assert bookings.count() == 3
    assert set(bookings.values_list("booking_status", "payment_status")) == {
        (Booking.STATUS_PENDING, Booking.UNPAID),
        (Booking.STATUS_CONFIRMED, Booking.PARTIAL),
        (Booking.STATUS_COMPLETED, Booking.PAID),
    }


@pytest.mark.django_db
def test_devseed_refuses_without_debug(settings):
    settings.DEBUG = False

    with pytest.raises(CommandError):
        call_command("devseed")
