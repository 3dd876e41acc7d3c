from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, Optional, Protocol, Union

from django.conf import settings

from payments.exceptions import (
    CaptureSurfaceUnavailable,
    GatewayAsyncFailure,
    GatewayAttachError,
    GatewayCreateError,
    GatewayError,
    PaymentValidationError,
)
from payments.services.amounts import BookingSnapshot, Resolution, ScheduleKind, resolve
from payments.services.gateway import REQUIRES_ACTION, SUCCEEDED, IntentClient, get_intent_client
from payments.services.methods import PaymentMethod, get_method
from payments.services.state import (
    AttachFailed,
    AttachUnresolved,
    CancelRequested,
    CaptureFailed,
    CaptureSucceeded,
    CaptureSurfaceFailed,
    CheckoutError,
    CheckoutState,
    DirectFormMounted,
    Dismissed,
    IntentCreated,
    IntentCreateFailed,
    IntentRef,
    MethodAttached,
    MethodConfirmed,
    PaymentResult,
    Phase,
    RedirectRequired,
    RestartRequested,
    ScheduleChangeRequested,
    ScheduleSelected,
    transition,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureHandle:
    """What an in-page capture form needs to collect a card for one intent."""

    intent_id: str
    client_key: str
    method: PaymentMethod
    amount: Decimal
    currency: str


class CaptureSurface(Protocol):
    def mount(self, handle: CaptureHandle) -> None:
        """Prepare the capture form; raise CaptureSurfaceUnavailable if it cannot be shown."""


class PaymentOrchestrator:
    """
    Drives one checkout: schedule -> method -> intent -> attach -> outcome.

    The orchestrator owns the ``CheckoutState`` for a single payment UI
    session. All state changes go through ``state.transition``; this class
    only adds the side effects (gateway calls, mounting the capture form,
    navigation and the caller's callbacks). Gateway failures never escape:
    they become a transition plus an error on the state.

    ``on_success(result)`` runs once, when the session reaches SUCCEEDED.
    ``on_cancel()`` runs when the session is dismissed.
    ``navigate_to(url)`` is only used for redirect methods and is one-way.
    ``on_transition(previous, current, event)`` observes every state change
    and runs before the success/cancel callbacks.
    """

    def __init__(
        self,
        booking: BookingSnapshot,
        *,
        intent_client: Optional[IntentClient] = None,
        capture_surface: Optional[CaptureSurface] = None,
        navigate_to: Optional[Callable[[str], None]] = None,
        on_success: Optional[Callable[[PaymentResult], None]] = None,
        on_cancel: Optional[Callable[[], None]] = None,
        on_transition: Optional[Callable[[CheckoutState, CheckoutState, object], None]] = None,
        return_url: Union[str, Callable[[str], str]] = "",
        currency: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        state: Optional[CheckoutState] = None,
    ):
        self.booking = booking
        self.resolution: Resolution = resolve(booking)
        self.intent_client = intent_client or get_intent_client()
        self.capture_surface = capture_surface
        self.navigate_to = navigate_to
        self.on_success = on_success
        self.on_cancel = on_cancel
        self.on_transition = on_transition
        self.return_url = return_url
        self.currency = currency or settings.PAYMENT_CURRENCY
        self.metadata = metadata or {}
        self.state = state or CheckoutState()

    def dispatch(self, event) -> CheckoutState:
        previous = self.state
        self.state = transition(previous, event)
        if self.state != previous and self.on_transition:
            self.on_transition(previous, self.state, event)
        if self.state.phase is not previous.phase:
            logger.info(
                "Checkout %s -> %s (%s)",
                previous.phase.value,
                self.state.phase.value,
                type(event).__name__,
            )
            if self.state.phase is Phase.SUCCEEDED and self.on_success:
                self.on_success(self.state.result)
            elif self.state.phase is Phase.CANCELLED and self.on_cancel:
                self.on_cancel()
        return self.state

    def refresh(self, booking: BookingSnapshot) -> CheckoutState:
        """Re-resolve amounts after the booking changed; a stale frozen amount is dropped."""
        self.booking = booking
        self.resolution = resolve(booking)
        if self.state.phase is Phase.SELECTING_METHOD and self.state.schedule is not None:
            amount = self.resolution.amount_for(self.state.schedule)
            if amount is None or amount != self.state.amount:
                return self.dispatch(ScheduleChangeRequested())
        return self.state

    def select_schedule(self, schedule: ScheduleKind | str) -> CheckoutState:
        try:
            kind = ScheduleKind(schedule)
        except ValueError:
            raise PaymentValidationError(f"Unknown payment schedule: {schedule}") from None
        if not self.resolution.allows(kind):
            raise PaymentValidationError(f"The {kind.value} payment is not available for this booking.")
        if self.state.phase is Phase.SELECTING_METHOD:
            self.dispatch(ScheduleChangeRequested())
        return self.dispatch(ScheduleSelected(kind, self.resolution.amount_for(kind)))

    def change_schedule(self) -> CheckoutState:
        return self.dispatch(ScheduleChangeRequested())

    def confirm(self, method_id) -> CheckoutState:
        method = get_method(method_id)
        if self.state.phase is not Phase.SELECTING_METHOD:
            # Covers repeated clicks while a create/attach call is outstanding.
            logger.info("Ignoring confirm for %s while %s", method.id.value, self.state.phase.value)
            return self.state

        state = self.dispatch(MethodConfirmed(method.id))
        if state.phase is not Phase.CREATING_INTENT:
            return state

        attempt = state.attempt
        try:
            created = self.intent_client.create_intent(
                state.amount,
                [method.id],
                currency=self.currency,
                metadata=self.metadata,
            )
        except GatewayError as exc:
            logger.warning("Payment intent creation failed (attempt %s): %s", attempt, exc)
            error = exc if isinstance(exc, GatewayCreateError) else GatewayCreateError(exc.message)
            return self.dispatch(IntentCreateFailed(attempt, CheckoutError.from_exception(error)))

        intent = IntentRef(intent_id=created.intent_id, client_key=created.client_key)
        state = self.dispatch(IntentCreated(attempt, intent))
        if state.phase is not Phase.ATTACHING_METHOD or not state.owns_intent(intent.intent_id):
            return state

        if method.is_direct:
            return self._mount_direct_form(method, intent)
        return self._attach_redirect_method(method, intent)

    def _mount_direct_form(self, method: PaymentMethod, intent: IntentRef) -> CheckoutState:
        self.dispatch(DirectFormMounted(intent.intent_id))
        handle = CaptureHandle(
            intent_id=intent.intent_id,
            client_key=intent.client_key,
            method=method,
            amount=self.state.amount,
            currency=self.currency,
        )
        try:
            if self.capture_surface is None:
                raise CaptureSurfaceUnavailable()
            self.capture_surface.mount(handle)
        except CaptureSurfaceUnavailable as exc:
            logger.warning("Capture form unavailable for intent %s: %s", intent.intent_id, exc)
            return self.dispatch(CaptureSurfaceFailed(intent.intent_id, CheckoutError.from_exception(exc)))
        return self.state

    def _attach_redirect_method(self, method: PaymentMethod, intent: IntentRef) -> CheckoutState:
        try:
            payment_method_id = self.intent_client.create_payment_method(method.id)
            outcome = self.intent_client.attach_method(
                intent.intent_id,
                payment_method_id,
                client_key=intent.client_key,
                return_url=self.return_url_for(intent.intent_id),
            )
        except GatewayError as exc:
            logger.warning("Attaching %s to intent %s failed: %s", method.id.value, intent.intent_id, exc)
            error = exc if isinstance(exc, GatewayAttachError) else GatewayAttachError(exc.message)
            return self.dispatch(AttachFailed(intent.intent_id, CheckoutError.from_exception(error)))

        if outcome.status == SUCCEEDED:
            result = self._result(intent.intent_id, outcome.payment_method_id, outcome.status)
            return self.dispatch(MethodAttached(intent.intent_id, result))

        if outcome.status == REQUIRES_ACTION and outcome.redirect_url:
            state = self.dispatch(RedirectRequired(intent.intent_id, outcome.redirect_url))
            if state.phase is Phase.AWAITING_REDIRECT:
                if self.navigate_to is None:
                    logger.warning("No navigation handler for redirect to %s", outcome.redirect_url)
                else:
                    self.navigate_to(outcome.redirect_url)
            return state

        failure = GatewayAsyncFailure(outcome.status or "unknown")
        return self.dispatch(AttachUnresolved(intent.intent_id, CheckoutError.from_exception(failure)))

    def capture_succeeded(self, intent_id: str, payment_method_id: str, status: str = SUCCEEDED) -> CheckoutState:
        """Called by the capture form once the card was attached to ``intent_id``."""
        if not self.state.owns_intent(intent_id):
            logger.info("Ignoring capture result for stale intent %s", intent_id)
            return self.state
        result = self._result(intent_id, payment_method_id, status)
        return self.dispatch(CaptureSucceeded(intent_id, result))

    def capture_failed(self, intent_id: str, error: CheckoutError) -> CheckoutState:
        return self.dispatch(CaptureFailed(intent_id, error))

    def capture_unavailable(self, intent_id: str, exc: CaptureSurfaceUnavailable) -> CheckoutState:
        return self.dispatch(CaptureSurfaceFailed(intent_id, CheckoutError.from_exception(exc)))

    def cancel(self) -> CheckoutState:
        return self.dispatch(CancelRequested())

    def restart(self) -> CheckoutState:
        return self.dispatch(RestartRequested())

    def dismiss(self) -> CheckoutState:
        return self.dispatch(Dismissed())

    def return_url_for(self, intent_id: str) -> str:
        """Where the gateway sends the client back to after an off-site step for ``intent_id``."""
        if callable(self.return_url):
            return self.return_url(intent_id)
        return self.return_url

    @property
    def method(self) -> Optional[PaymentMethod]:
        return get_method(self.state.method) if self.state.method else None

    def _result(self, intent_id: str, payment_method_id: str, status: str) -> PaymentResult:
        return PaymentResult(
            intent_id=intent_id,
            payment_method_id=payment_method_id,
            status=status,
            amount=self.state.amount,
            schedule=self.state.schedule,
            method=self.state.method,
        )
