from decimal import Decimal

import pytest

from payments.exceptions import CaptureSurfaceUnavailable, GatewayAttachError, GatewayCreateError, PaymentValidationError
from payments.services.amounts import BookingSnapshot, ScheduleKind
from payments.services.gateway import AttachOutcome, CreatedIntent
from payments.services.methods import MethodId
from payments.services.orchestrator import PaymentOrchestrator
from payments.services.state import CheckoutError, Phase


class FakeIntentClient:
    def __init__(self, *, attach_status="succeeded", redirect_url=None, create_error=None, attach_error=None):
        self.attach_status = attach_status
        self.redirect_url = redirect_url
        self.create_error = create_error
        self.attach_error = attach_error
        self.created = []
        self.attached = []

    def create_intent(self, amount, methods, *, currency, metadata=None):
        self.created.append((amount, list(methods)))
        if self.create_error:
            raise self.create_error
        intent_id = f"pi_{len(self.created)}"
        return CreatedIntent(intent_id=intent_id, client_key=f"{intent_id}_key", amount=amount, currency=currency)

    def create_payment_method(self, method_id):
        return f"pm_{MethodId(method_id).value}"

    def attach_method(self, intent_id, payment_method_id, *, client_key, return_url):
        self.attached.append((intent_id, payment_method_id))
        if self.attach_error:
            raise self.attach_error
        return AttachOutcome(
            status=self.attach_status,
            payment_method_id=payment_method_id,
            redirect_url=self.redirect_url,
        )


class RecordingSurface:
    def __init__(self, unavailable=False):
        self.unavailable = unavailable
        self.handles = []

    def mount(self, handle):
        if self.unavailable:
            raise CaptureSurfaceUnavailable()
        self.handles.append(handle)


DEPOSIT_BOOKING = BookingSnapshot(
    total_amount=Decimal("10000.00"),
    total_paid=Decimal("0.00"),
    booking_status="Pending",
    payment_status="unpaid",
    deposit_amount=Decimal("3000.00"),
)


@pytest.fixture
def calls():
    return {"navigate": [], "success": [], "cancel": 0}


def build(client, calls, surface=None, booking=DEPOSIT_BOOKING):
    def on_cancel():
        calls["cancel"] += 1

    return PaymentOrchestrator(
        booking,
        intent_client=client,
        capture_surface=surface or RecordingSurface(),
        navigate_to=calls["navigate"].append,
        on_success=calls["success"].append,
        on_cancel=on_cancel,
        return_url="https://app.test/payment/confirm/1",
        currency="PHP",
    )


def test_card_deposit_creates_intent_and_mounts_form(calls):
    client = FakeIntentClient()
    surface = RecordingSurface()
    orchestrator = build(client, calls, surface)

    orchestrator.select_schedule("deposit")
    state = orchestrator.confirm("card")

    assert client.created == [(Decimal("3000.00"), [MethodId.CARD])]
    assert client.attached == []
    assert state.phase is Phase.MOUNTING_DIRECT_FORM
    assert surface.handles[0].client_key == "pi_1_key"
    assert surface.handles[0].amount == Decimal("3000.00")


def test_redirect_method_that_succeeds_inline(calls):
    client = FakeIntentClient(attach_status="succeeded")
    orchestrator = build(client, calls)

    orchestrator.select_schedule(ScheduleKind.DEPOSIT)
    state = orchestrator.confirm(MethodId.GCASH)

    assert state.phase is Phase.SUCCEEDED
    assert len(calls["success"]) == 1
    assert calls["success"][0].intent_id == "pi_1"
    assert calls["success"][0].payment_method_id == "pm_gcash"
    assert calls["navigate"] == []


def test_redirect_method_that_requires_action(calls):
    client = FakeIntentClient(attach_status="requires_action", redirect_url="https://pay.example/x")
    orchestrator = build(client, calls)

    orchestrator.select_schedule("deposit")
    state = orchestrator.confirm("maya")

    assert state.phase is Phase.AWAITING_REDIRECT
    assert calls["navigate"] == ["https://pay.example/x"]
    assert calls["success"] == []


def test_create_failure_never_attaches(calls):
    client = FakeIntentClient(create_error=GatewayCreateError("Network down"))
    orchestrator = build(client, calls)

    orchestrator.select_schedule("deposit")
    state = orchestrator.confirm("gcash")

    assert state.phase is Phase.SELECTING_METHOD
    assert state.error.code == "gateway_create"
    assert state.error.message == "Network down"
    assert state.intent is None
    assert client.attached == []


def test_attach_error_returns_to_method_selection(calls):
    client = FakeIntentClient(attach_error=GatewayAttachError())
    orchestrator = build(client, calls)

    orchestrator.select_schedule("deposit")
    state = orchestrator.confirm("qr_ph")

    assert state.phase is Phase.SELECTING_METHOD
    assert state.error.code == "gateway_attach"
    assert calls["navigate"] == []


def test_unresolved_attach_status_fails(calls):
    client = FakeIntentClient(attach_status="processing")
    orchestrator = build(client, calls)

    orchestrator.select_schedule("deposit")
    state = orchestrator.confirm("bank_transfer")

    assert state.phase is Phase.FAILED
    assert state.error.code == "gateway_async"
    assert state.error.message == "Payment status: processing"


def test_repeated_confirm_creates_one_intent(calls):
    client = FakeIntentClient(attach_status="requires_action", redirect_url="https://pay.example/x")
    orchestrator = build(client, calls)

    orchestrator.select_schedule("deposit")
    orchestrator.confirm("gcash")
    orchestrator.confirm("gcash")
    orchestrator.confirm("card")

    assert len(client.created) == 1


def test_confirm_without_schedule_makes_no_gateway_call(calls):
    client = FakeIntentClient()
    orchestrator = build(client, calls)

    state = orchestrator.confirm("card")

    assert state.phase is Phase.SELECTING_SCHEDULE
    assert client.created == []


def test_unknown_or_ineligible_schedule_is_rejected(calls):
    orchestrator = build(FakeIntentClient(), calls)

    with pytest.raises(PaymentValidationError):
        orchestrator.select_schedule("installment")
    with pytest.raises(PaymentValidationError):
        orchestrator.select_schedule("remaining")
    assert orchestrator.state.phase is Phase.SELECTING_SCHEDULE


def test_selecting_another_schedule_replaces_amount(calls):
    orchestrator = build(FakeIntentClient(), calls)

    orchestrator.select_schedule("deposit")
    state = orchestrator.select_schedule("full")

    assert state.phase is Phase.SELECTING_METHOD
    assert state.schedule is ScheduleKind.FULL
    assert state.amount == Decimal("10000.00")


def test_capture_surface_unavailable_returns_to_method_selection(calls):
    orchestrator = build(FakeIntentClient(), calls, RecordingSurface(unavailable=True))

    orchestrator.select_schedule("deposit")
    state = orchestrator.confirm("card")

    assert state.phase is Phase.SELECTING_METHOD
    assert state.error.code == "sdk_unavailable"
    assert state.intent is None


def test_capture_result_for_stale_intent_is_ignored(calls):
    orchestrator = build(FakeIntentClient(), calls)
    orchestrator.select_schedule("deposit")
    orchestrator.confirm("card")
    orchestrator.cancel()
    orchestrator.confirm("card")

    state = orchestrator.capture_succeeded("pi_1", "pm_card")

    assert state.phase is Phase.MOUNTING_DIRECT_FORM
    assert state.intent.intent_id == "pi_2"
    assert calls["success"] == []

    state = orchestrator.capture_succeeded("pi_2", "pm_card")

    assert state.phase is Phase.SUCCEEDED
    assert len(calls["success"]) == 1


def test_failed_capture_restarts_with_a_new_intent(calls):
    client = FakeIntentClient()
    orchestrator = build(client, calls)
    orchestrator.select_schedule("deposit")
    orchestrator.confirm("card")

    failed = orchestrator.capture_failed("pi_1", CheckoutError(code="gateway_attach", message="Card declined"))
    assert failed.phase is Phase.FAILED

    orchestrator.restart()
    state = orchestrator.confirm("card")

    assert state.intent.intent_id == "pi_2"
    assert len(client.created) == 2


def test_dismiss_runs_cancel_callback_once(calls):
    orchestrator = build(FakeIntentClient(), calls)
    orchestrator.select_schedule("deposit")

    orchestrator.dismiss()
    orchestrator.dismiss()

    assert orchestrator.state.phase is Phase.CANCELLED
    assert calls["cancel"] == 1


def test_transition_observer_sees_every_change(calls):
    seen = []
    orchestrator = build(FakeIntentClient(), calls)
    orchestrator.on_transition = lambda previous, current, event: seen.append(current.phase)

    orchestrator.select_schedule("deposit")
    orchestrator.confirm("gcash")

    assert seen == [
        Phase.SELECTING_METHOD,
        Phase.CREATING_INTENT,
        Phase.ATTACHING_METHOD,
        Phase.SUCCEEDED,
    ]


def test_refresh_drops_a_stale_amount(calls):
    orchestrator = build(FakeIntentClient(), calls)
    orchestrator.select_schedule("full")

    state = orchestrator.refresh(
        BookingSnapshot(
            total_amount=Decimal("12000.00"),
            total_paid=Decimal("0.00"),
            booking_status="Pending",
            payment_status="unpaid",
            deposit_amount=Decimal("3000.00"),
        )
    )

    assert state.phase is Phase.SELECTING_SCHEDULE
    assert state.amount is None


def test_refresh_keeps_an_unchanged_amount(calls):
    orchestrator = build(FakeIntentClient(), calls)
    orchestrator.select_schedule("deposit")

    state = orchestrator.refresh(DEPOSIT_BOOKING)

    assert state.phase is Phase.SELECTING_METHOD
    assert state.amount == Decimal("3000.00")
