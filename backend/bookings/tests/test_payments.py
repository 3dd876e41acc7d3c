from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from rest_framework.test import APIClient

from bookings.models import Booking
from bookings.services.payments import record_payment_outcome
from payments.models import Payment


@pytest.fixture
def client_user(db):
    return get_user_model().objects.create_user(username="carla", password="pass12345")


@pytest.fixture
def booking(client_user):
    return Booking.objects.create(
        client=client_user,
        package_name="Debut Photo & Video",
        total_amount=Decimal("25000.00"),
        deposit_amount=Decimal("5000.00"),
    )


def add_payment(booking, amount, status=Payment.PAID, intent_id=None):
    return Payment.objects.create(
        booking=booking,
        payment_intent_id=intent_id or f"pi_{booking.payments.count() + 1}",
        amount=Decimal(amount),
        status=status,
    )


@pytest.mark.django_db
def test_deposit_payment_approves_pending_booking(booking):
    add_payment(booking, "5000.00")

    updated = record_payment_outcome(booking)

    assert updated.total_paid == Decimal("5000.00")
    assert updated.payment_status == Booking.PARTIAL
    assert updated.booking_status == Booking.STATUS_APPROVED


@pytest.mark.django_db
def test_payment_below_deposit_keeps_booking_pending(booking):
    add_payment(booking, "1000.00")

    updated = record_payment_outcome(booking)

    assert updated.payment_status == Booking.PARTIAL
    assert updated.booking_status == Booking.STATUS_PENDING


@pytest.mark.django_db
def test_only_paid_payments_count(booking):
    add_payment(booking, "5000.00", status=Payment.FAILED)
    add_payment(booking, "5000.00", status=Payment.PROCESSING)

    updated = record_payment_outcome(booking)

    assert updated.total_paid == Decimal("0.00")
    assert updated.payment_status == Booking.UNPAID
    assert updated.booking_status == Booking.STATUS_PENDING


@pytest.mark.django_db
def test_full_payment_marks_booking_paid_without_touching_confirmed_status(booking):
    booking.booking_status = Booking.STATUS_CONFIRMED
    booking.save()
    add_payment(booking, "5000.00")
    add_payment(booking, "20000.00")

    updated = record_payment_outcome(booking)

    assert updated.total_paid == Decimal("25000.00")
    assert updated.payment_status == Booking.PAID
    assert updated.booking_status == Booking.STATUS_CONFIRMED
    assert updated.remaining_balance == Decimal("0.00")


@pytest.mark.django_db
def test_deposit_cannot_exceed_total(booking):
    booking.deposit_amount = Decimal("30000.00")

    with pytest.raises(ValidationError):
        booking.full_clean()


@pytest.mark.django_db
def test_booking_api_is_scoped_to_client(client_user, booking):
    other = get_user_model().objects.create_user(username="sam", password="pass12345")
    Booking.objects.create(client=other, package_name="Other", total_amount=Decimal("100.00"))
    api = APIClient()
    api.force_authenticate(client_user)

    response = api.get("/api/bookings/")

    assert response.status_code == 200
    assert [row["id"] for row in response.data] == [booking.id]
    options = response.data[0]["payment_options"]
    assert options["default_schedule"] == "deposit"
    assert options["schedules"] == {"deposit": "5000.00", "full": "25000.00"}
    assert response.data[0]["remaining_balance"] == "25000.00"


@pytest.mark.django_db
def test_booking_detail_hidden_from_other_clients(booking):
    other = get_user_model().objects.create_user(username="sam", password="pass12345")
    api = APIClient()
    api.force_authenticate(other)

    assert api.get(f"/api/bookings/{booking.id}/").status_code == 404
