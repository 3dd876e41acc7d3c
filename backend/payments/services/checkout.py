"""
Checkout sessions over HTTP.

Each request rebuilds a PaymentOrchestrator from the CheckoutSession row,
applies one user action, keeps the Payment records in step with the state
changes, and stores the new state. Writes are versioned: the new attempt is
written before the gateway is asked for an intent, so of two confirms racing
on the same session only one reaches the gateway.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.db.models import F
from django.utils import timezone

from bookings.models import Booking
from bookings.services.payments import record_payment_outcome
from payments.exceptions import CheckoutConflict
from payments.models import CheckoutSession, Payment
from payments.services.amounts import BookingSnapshot
from payments.services.gateway import (
    AWAITING_PAYMENT_METHOD,
    SUCCEEDED,
    IntentClient,
    PaymentLink,
    get_intent_client,
    should_use_stub,
)
from payments.services.methods import method_for_gateway_type
from payments.services.orchestrator import PaymentOrchestrator
from payments.services.presentation import HostedCaptureSurface, forward, present
from payments.services.state import (
    CheckoutState,
    IntentCreated,
    MethodConfirmed,
    PaymentResult,
    Phase,
)

logger = logging.getLogger(__name__)

# Payment statuses a checkout may still move; paid, failed and cancelled stay put.
OPEN_PAYMENT_STATUSES = (Payment.PENDING, Payment.PROCESSING)


def build_return_url(payment: Payment) -> str:
    """The client page a wallet or bank sends the customer back to; it refreshes ``payment``."""
    path = settings.PAYMENT_RETURN_PATH.rstrip("/")
    return f"{settings.FRONTEND_URL.rstrip('/')}{path}/{payment.pk}"


def _return_url_for_intent(intent_id: str) -> str:
    return build_return_url(Payment.objects.only("pk").get(payment_intent_id=intent_id))


class PaymentRecorder:
    """Mirror orchestrator transitions onto the booking's Payment rows."""

    def __init__(self, booking: Booking, currency: str):
        self.booking = booking
        self.currency = currency

    def __call__(self, previous: CheckoutState, current: CheckoutState, event) -> None:
        if isinstance(event, IntentCreated):
            Payment.objects.get_or_create(
                payment_intent_id=event.intent.intent_id,
                defaults={
                    "booking": self.booking,
                    "amount": current.amount,
                    "currency": self.currency,
                    "payment_method": current.method.value,
                    "schedule": current.schedule.value,
                    "status": Payment.PENDING,
                    "metadata": {"attempt": current.attempt},
                },
            )
            return

        intent = previous.intent
        if intent is None or current.phase is Phase.SUCCEEDED:
            return
        if current.phase is Phase.AWAITING_REDIRECT:
            self._update(intent.intent_id, status=Payment.PROCESSING)
        elif current.phase is Phase.FAILED:
            self._update(intent.intent_id, status=Payment.FAILED, failure_reason=current.error.message)
        elif current.intent is None:
            if current.error is not None:
                self._update(intent.intent_id, status=Payment.FAILED, failure_reason=current.error.message)
            else:
                self._update(intent.intent_id, status=Payment.CANCELLED)

    def record_success(self, result: PaymentResult) -> None:
        updated = Payment.objects.filter(payment_intent_id=result.intent_id).exclude(status=Payment.PAID).update(
            status=Payment.PAID,
            payment_method_id=result.payment_method_id,
            paid_at=timezone.now(),
            failure_reason="",
            updated_at=timezone.now(),
        )
        if updated:
            logger.info(
                "Payment %s for booking #%s succeeded (%s %s)",
                result.intent_id,
                self.booking.pk,
                result.amount,
                result.method.value,
            )
            record_payment_outcome(self.booking)

    def _update(self, intent_id: str, **fields) -> None:
        fields["updated_at"] = timezone.now()
        Payment.objects.filter(payment_intent_id=intent_id, status__in=OPEN_PAYMENT_STATUSES).update(**fields)


class SessionStore:
    """
    Versioned writes of one session's state.

    Every write is a conditional UPDATE on the version read with the row, so
    it works the same on databases without row locks (SQLite). A write that
    finds a newer version raises CheckoutConflict.
    """

    def __init__(self, session: CheckoutSession):
        self.session_id = session.pk
        self.version = session.version
        self.stored = CheckoutState.from_dict(session.state)

    def write(self, state: CheckoutState) -> None:
        if state == self.stored:
            return
        current = CheckoutSession.objects.filter(pk=self.session_id, version=self.version)
        if state.phase is Phase.CANCELLED:
            written, _ = current.delete()
        else:
            written = current.update(
                state=state.to_dict(),
                version=F("version") + 1,
                updated_at=timezone.now(),
            )
        if not written:
            logger.warning("Checkout %s changed since version %s was read", self.session_id, self.version)
            raise CheckoutConflict()
        self.version += 1
        self.stored = state

    def claim_attempt(self, previous: CheckoutState, current: CheckoutState, event) -> None:
        # Commit the new attempt before the orchestrator calls the gateway.
        if isinstance(event, MethodConfirmed) and current.phase is Phase.CREATING_INTENT:
            self.write(current)


@dataclass
class CheckoutContext:
    session: CheckoutSession
    orchestrator: PaymentOrchestrator
    surface: HostedCaptureSurface
    store: SessionStore
    navigations: List[str] = field(default_factory=list)
    session_id: str = ""

    def __post_init__(self):
        # Deleting a dismissed session clears the row's pk.
        self.session_id = str(self.session.pk)

    def view(self) -> Dict[str, Any]:
        payload = present(self.orchestrator, public_key=self.surface.public_key)
        payload["session_id"] = self.session_id
        payload["booking_id"] = self.session.booking_id
        payload["navigate_to"] = self.navigations[-1] if self.navigations else None
        return payload

    def save(self) -> None:
        self.store.write(self.orchestrator.state)


def _build_context(session: CheckoutSession, intent_client: Optional[IntentClient] = None) -> CheckoutContext:
    booking = session.booking
    client = intent_client or get_intent_client()
    currency = settings.PAYMENT_CURRENCY
    recorder = PaymentRecorder(booking, currency)
    store = SessionStore(session)
    surface = HostedCaptureSurface(
        client,
        public_key=settings.PAYMONGO_PUBLIC_KEY,
        stubbed=should_use_stub(),
    )

    def on_transition(previous, current, event):
        store.claim_attempt(previous, current, event)
        recorder(previous, current, event)

    navigations: List[str] = []
    snapshot = BookingSnapshot.from_booking(booking)
    orchestrator = PaymentOrchestrator(
        snapshot,
        intent_client=client,
        capture_surface=surface,
        navigate_to=navigations.append,
        on_success=recorder.record_success,
        on_cancel=lambda: logger.info("Checkout %s dismissed for booking #%s", session.pk, booking.pk),
        on_transition=on_transition,
        return_url=_return_url_for_intent,
        currency=currency,
        metadata={
            "booking_id": str(booking.pk),
            "client_id": str(booking.client_id),
            "package": booking.package_name,
        },
        state=CheckoutState.from_dict(session.state),
    )
    # The booking may have changed since the state was stored.
    orchestrator.refresh(snapshot)
    return CheckoutContext(
        session=session,
        orchestrator=orchestrator,
        surface=surface,
        store=store,
        navigations=navigations,
    )


def start_checkout(*, booking: Booking, user, intent_client: Optional[IntentClient] = None) -> CheckoutContext:
    session = CheckoutSession.objects.create(
        booking=booking,
        created_by=user,
        state=CheckoutState().to_dict(),
    )
    logger.info("Checkout %s started for booking #%s", session.pk, booking.pk)
    return _build_context(session, intent_client)


def load_checkout(session: CheckoutSession, intent_client: Optional[IntentClient] = None) -> CheckoutContext:
    return _build_context(session, intent_client)


def _load(session_id, intent_client: Optional[IntentClient]) -> CheckoutContext:
    session = CheckoutSession.objects.select_related("booking").get(pk=session_id)
    return _build_context(session, intent_client)


def apply_checkout_action(
    session_id,
    action: str,
    data: Optional[Dict[str, Any]] = None,
    *,
    intent_client: Optional[IntentClient] = None,
) -> CheckoutContext:
    """Apply one user action. Raises CheckoutConflict when another request changed the session first."""
    context = _load(session_id, intent_client)
    forward(context.orchestrator, action, data)
    context.save()
    return context


def apply_capture_result(
    session_id,
    *,
    intent_id: str,
    payment_method_id: str = "",
    error: str = "",
    unavailable: bool = False,
    intent_client: Optional[IntentClient] = None,
) -> CheckoutContext:
    """Report what the in-page card form produced for ``intent_id``."""
    context = _load(session_id, intent_client)
    if unavailable:
        context.surface.report_unavailable(context.orchestrator, intent_id=intent_id, message=error)
    elif error:
        context.surface.report_error(context.orchestrator, intent_id=intent_id, message=error)
    else:
        context.surface.complete(
            context.orchestrator,
            intent_id=intent_id,
            payment_method_id=payment_method_id,
        )
    context.save()
    return context




def refresh_payment_status(payment: Payment, *, intent_client: Optional[IntentClient] = None) -> Payment:
    """
    Pull the latest intent status from the gateway.

    This is where a redirect payment lands once the client comes back from the
    wallet or bank page. Raises GatewayLookupError when the gateway cannot be
    reached.
    """

    client = intent_client or get_intent_client()
    snapshot = client.retrieve_intent(payment.payment_intent_id)

    if snapshot.status == SUCCEEDED and payment.status != Payment.PAID:
        payment.status = Payment.PAID
        payment.paid_at = timezone.now()
        payment.failure_reason = ""
        if snapshot.payment_method_id:
            payment.payment_method_id = snapshot.payment_method_id
        method = method_for_gateway_type(snapshot.payment_method_type)
        if method is not None:
            payment.payment_method = method.id.value
        payment.save()
        logger.info("Payment %s confirmed paid by the gateway", payment.payment_intent_id)
        record_payment_outcome(payment.booking)
    elif snapshot.status == AWAITING_PAYMENT_METHOD and payment.status == Payment.PROCESSING:
        payment.status = Payment.PENDING
        if snapshot.failure_reason:
            payment.failure_reason = snapshot.failure_reason
        payment.save(update_fields=["status", "failure_reason", "updated_at"])
    return payment


def create_booking_payment_link(
    booking: Booking,
    amount: Decimal,
    *,
    description: str = "",
    intent_client: Optional[IntentClient] = None,
) -> PaymentLink:
    client = intent_client or get_intent_client()
    description = description or f"Payment for Booking #{booking.pk}"
    link = client.create_payment_link(
        amount,
        description=description,
        metadata={"booking_id": str(booking.pk)},
    )
    logger.info("Payment link %s created for booking #%s (%s)", link.link_id, booking.pk, amount)
    return link
