from decimal import Decimal

import pytest

from payments.exceptions import PaymentValidationError
from payments.services.amounts import BookingSnapshot
from payments.services.gateway import StubIntentClient
from payments.services.orchestrator import PaymentOrchestrator
from payments.services.presentation import (
    VIEW_COMPLETE,
    VIEW_DIRECT_CAPTURE,
    VIEW_REDIRECT_WAITING,
    VIEW_SELECTION,
    HostedCaptureSurface,
    forward,
    present,
)
from payments.services.state import Phase


def booking(**overrides):
    fields = {
        "total_amount": Decimal("10000.00"),
        "total_paid": Decimal("3000.00"),
        "booking_status": "Confirmed",
        "payment_status": "partial",
        "deposit_amount": Decimal("3000.00"),
    }
    fields.update(overrides)
    return BookingSnapshot(**fields)


@pytest.fixture
def client():
    return StubIntentClient()


def make(client, snapshot=None, *, public_key="pk_test", stubbed=False):
    surface = HostedCaptureSurface(client, public_key=public_key, stubbed=stubbed)
    navigations = []
    orchestrator = PaymentOrchestrator(
        snapshot or booking(),
        intent_client=client,
        capture_surface=surface,
        navigate_to=navigations.append,
        return_url="https://app.test/r",
        currency="PHP",
    )
    return orchestrator, surface, navigations


def test_selection_view_preselects_remaining(client):
    orchestrator, _, _ = make(client)

    view = present(orchestrator, public_key="pk_test")

    assert view["view"] == VIEW_SELECTION
    assert view["show_schedule_selector"] is True
    assert view["default_schedule"] == "remaining"
    assert [s["kind"] for s in view["schedules"]] == ["remaining", "full"]
    assert [s["selected"] for s in view["schedules"]] == [True, False]
    assert view["summary"]["amount_to_pay"] == "7000.00"
    assert view["summary"]["remaining_balance"] == "7000.00"
    assert view["can_confirm"] is False
    assert {m["id"] for m in view["methods"]} == {"card", "gcash", "maya", "qr_ph", "bank_transfer"}


def test_paid_booking_blocks_payment(client):
    orchestrator, _, _ = make(
        client, booking(total_paid=Decimal("10000.00"), payment_status="paid")
    )

    view = present(orchestrator)

    assert view["payment_blocked"] is True
    assert view["show_schedule_selector"] is False
    assert view["summary"]["amount_to_pay"] is None


def test_card_confirm_shows_direct_capture(client):
    orchestrator, surface, _ = make(client)
    forward(orchestrator, "select_schedule", {"schedule": "remaining"})
    forward(orchestrator, "confirm", {"method": "card"})

    view = present(orchestrator, public_key="pk_test")

    assert view["view"] == VIEW_DIRECT_CAPTURE
    assert view["intent_id"].startswith("pi_test_")
    assert view["client_key"].startswith(view["intent_id"])
    assert view["public_key"] == "pk_test"
    assert surface.handle.amount == Decimal("7000.00")


def test_card_without_public_key_falls_back_to_selection(client):
    orchestrator, _, _ = make(client, public_key="", stubbed=False)
    forward(orchestrator, "select_schedule", {"schedule": "remaining"})
    forward(orchestrator, "confirm", {"method": "card"})

    view = present(orchestrator)

    assert view["view"] == VIEW_SELECTION
    assert view["error"]["code"] == "sdk_unavailable"
    assert view["can_confirm"] is True


def test_wallet_confirm_shows_redirect_waiting(settings, client):
    settings.FRONTEND_URL = "https://app.test"
    orchestrator, _, navigations = make(client)
    forward(orchestrator, "select_schedule", {"schedule": "full"})
    forward(orchestrator, "confirm", {"method": "gcash"})

    view = present(orchestrator)

    assert view["view"] == VIEW_REDIRECT_WAITING
    assert view["redirect_url"].startswith("https://app.test/payments/preview?")
    assert navigations == [view["redirect_url"]]


def test_completed_card_payment(client):
    orchestrator, surface, _ = make(client)
    forward(orchestrator, "select_schedule", {"schedule": "remaining"})
    forward(orchestrator, "confirm", {"method": "card"})
    intent_id = orchestrator.state.intent.intent_id

    surface.complete(orchestrator, intent_id=intent_id, payment_method_id="pm_test_card_abc")
    view = present(orchestrator)

    assert view["view"] == VIEW_COMPLETE
    assert view["outcome"] == "succeeded"
    assert view["payment_intent_id"] == intent_id


def test_declined_card_offers_restart(client):
    orchestrator, surface, _ = make(client)
    forward(orchestrator, "select_schedule", {"schedule": "remaining"})
    forward(orchestrator, "confirm", {"method": "card"})

    surface.report_error(orchestrator, intent_id=orchestrator.state.intent.intent_id, message="Card declined")
    view = present(orchestrator)

    assert orchestrator.state.phase is Phase.FAILED
    assert view["view"] == VIEW_SELECTION
    assert view["can_restart"] is True
    assert view["error"]["message"] == "Card declined"


def test_unknown_action_is_rejected(client):
    orchestrator, _, _ = make(client)

    with pytest.raises(PaymentValidationError):
        forward(orchestrator, "refund")
