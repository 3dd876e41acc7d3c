from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from bookings.models import Booking
from payments.models import CheckoutSession, Payment


@pytest.mark.django_db
def test_end_to_end_deposit_then_balance(settings):
    settings.PAYMONGO_USE_STUB = True
    settings.FRONTEND_URL = "https://app.test"
    client = APIClient()

    user = get_user_model().objects.create_user(username="carla", email="carla@example.com", password="pass12345")
    booking = Booking.objects.create(
        client=user,
        package_name="Garden Wedding Package",
        total_amount=Decimal("10000.00"),
        deposit_amount=Decimal("3000.00"),
    )

    # Obtain a token
    token_response = client.post(
        "/api/auth/token/",
        {"username": "carla", "password": "pass12345"},
        format="json",
    )
    assert token_response.status_code == 200
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {token_response.data['access']}")

    # Booking shows the deposit as the preferred option
    booking_response = client.get(f"/api/bookings/{booking.id}/")
    assert booking_response.status_code == 200
    assert booking_response.data["payment_options"]["default_schedule"] == "deposit"

    # Pay the deposit by card
    session_id = client.post(f"/api/bookings/{booking.id}/checkout/", format="json").data["session_id"]
    client.post(
        f"/api/checkout/{session_id}/events/",
        {"action": "select_schedule", "schedule": "deposit"},
        format="json",
    )
    capture = client.post(
        f"/api/checkout/{session_id}/events/",
        {"action": "confirm", "method": "card"},
        format="json",
    )
    assert capture.data["view"] == "direct_capture"
    done = client.post(
        f"/api/checkout/{session_id}/capture/",
        {"intent_id": capture.data["intent_id"], "payment_method_id": "pm_test_card_e2e"},
        format="json",
    )
    assert done.data["outcome"] == "succeeded"

    booking.refresh_from_db()
    assert booking.booking_status == Booking.STATUS_APPROVED
    assert booking.payment_status == Booking.PARTIAL

    # A new session now defaults to the remaining balance
    checkout = client.post(f"/api/bookings/{booking.id}/checkout/", format="json")
    assert checkout.data["default_schedule"] == "remaining"
    assert checkout.data["summary"]["amount_to_pay"] == "7000.00"
    session_id = checkout.data["session_id"]

    client.post(
        f"/api/checkout/{session_id}/events/",
        {"action": "select_schedule", "schedule": "remaining"},
        format="json",
    )
    waiting = client.post(
        f"/api/checkout/{session_id}/events/",
        {"action": "confirm", "method": "gcash"},
        format="json",
    )
    assert waiting.data["view"] == "redirect_waiting"
    assert waiting.data["navigate_to"].startswith("https://app.test/payments/preview?")

    # The client returns from the wallet page; the payment stays processing until the gateway says otherwise
    wallet_payment = Payment.objects.get(booking=booking, payment_method="gcash")
    status_response = client.get(f"/api/payments/{wallet_payment.id}/status/")
    assert status_response.status_code == 200
    assert status_response.data["status"] == Payment.PROCESSING

    # Walk away from the second checkout
    assert client.delete(f"/api/checkout/{session_id}/").status_code == 204
    assert not CheckoutSession.objects.filter(pk=session_id).exists()

    payments_response = client.get(f"/api/bookings/{booking.id}/payments/")
    assert payments_response.status_code == 200
    assert sorted(row["status"] for row in payments_response.data) == [Payment.CANCELLED, Payment.PAID]
