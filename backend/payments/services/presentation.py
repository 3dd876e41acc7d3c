from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from payments.exceptions import (
    CaptureSurfaceUnavailable,
    GatewayAsyncFailure,
    GatewayAttachError,
    GatewayError,
    PaymentValidationError,
)
from payments.services.amounts import ScheduleKind
from payments.services.gateway import SUCCEEDED, IntentClient
from payments.services.methods import METHODS
from payments.services.orchestrator import CaptureHandle, PaymentOrchestrator
from payments.services.state import CheckoutError, CheckoutState, Phase

logger = logging.getLogger(__name__)

VIEW_SELECTION = "selection"
VIEW_DIRECT_CAPTURE = "direct_capture"
VIEW_REDIRECT_WAITING = "redirect_waiting"
VIEW_COMPLETE = "complete"

SCHEDULE_LABELS = {
    ScheduleKind.DEPOSIT: "Pay Deposit",
    ScheduleKind.REMAINING: "Pay Remaining Balance",
    ScheduleKind.FULL: "Pay in Full",
}

ACTIONS = ("select_schedule", "change_schedule", "confirm", "cancel", "restart", "dismiss")


def _money(value) -> Optional[str]:
    return None if value is None else str(value)


def _error(state: CheckoutState) -> Optional[Dict[str, str]]:
    if state.error is None:
        return None
    return {"code": state.error.code, "message": state.error.message}


def present(orchestrator: PaymentOrchestrator, *, public_key: str = "") -> Dict[str, Any]:
    """Project the orchestrator's state onto the view the client should render."""
    state = orchestrator.state
    method = orchestrator.method
    payload: Dict[str, Any] = {
        "phase": state.phase.value,
        "schedule": state.schedule.value if state.schedule else None,
        "amount": _money(state.amount),
        "method": state.method.value if state.method else None,
        "error": _error(state),
    }

    attaching_direct = state.phase is Phase.ATTACHING_METHOD and method is not None and method.is_direct
    if state.phase is Phase.MOUNTING_DIRECT_FORM or attaching_direct:
        payload.update(
            view=VIEW_DIRECT_CAPTURE,
            intent_id=state.intent.intent_id,
            client_key=state.intent.client_key,
            public_key=public_key,
            method_label=method.label,
            can_cancel=True,
        )
        return payload

    if state.phase in (Phase.ATTACHING_METHOD, Phase.AWAITING_REDIRECT):
        payload.update(
            view=VIEW_REDIRECT_WAITING,
            redirect_url=state.redirect_url,
            method_label=method.label if method else None,
            can_cancel=True,
        )
        return payload

    if state.is_sink:
        result = state.result
        payload.update(
            view=VIEW_COMPLETE,
            outcome=state.phase.value,
            payment_intent_id=result.intent_id if result else None,
            payment_method_id=result.payment_method_id if result else None,
        )
        return payload

    payload.update(view=VIEW_SELECTION, **_selection(orchestrator))
    return payload


def _selection(orchestrator: PaymentOrchestrator) -> Dict[str, Any]:
    state = orchestrator.state
    resolution = orchestrator.resolution
    booking = orchestrator.booking
    selected = state.schedule or resolution.default
    if selected is None and resolution.full_fallback:
        selected = ScheduleKind.FULL
    amount_to_pay = state.amount
    if amount_to_pay is None and selected is not None:
        amount_to_pay = resolution.amount_for(selected)

    schedules = [
        {
            "kind": kind.value,
            "label": SCHEDULE_LABELS[kind],
            "amount": _money(resolution.amounts[kind]),
            "selected": kind is selected,
        }
        for kind in ScheduleKind
        if kind in resolution.eligible
    ]
    return {
        "show_schedule_selector": bool(schedules),
        "schedules": schedules,
        "default_schedule": resolution.default.value if resolution.default else None,
        "full_fallback": resolution.full_fallback,
        "payment_blocked": not resolution.eligible and not resolution.full_fallback,
        "methods": [
            {"id": m.id.value, "label": m.label, "mode": m.mode.value} for m in METHODS
        ],
        "summary": {
            "total_amount": _money(booking.total),
            "deposit_amount": _money(booking.deposit),
            "total_paid": _money(booking.total_paid),
            "remaining_balance": _money(booking.remaining_balance),
            "amount_to_pay": _money(amount_to_pay),
        },
        "busy": state.is_busy,
        "can_confirm": state.phase is Phase.SELECTING_METHOD,
        "can_restart": state.phase is Phase.FAILED,
    }


def forward(orchestrator: PaymentOrchestrator, action: str, data: Optional[Dict[str, Any]] = None) -> CheckoutState:
    """Translate a user action from the checkout UI into an orchestrator call."""
    data = data or {}
    if action == "select_schedule":
        return orchestrator.select_schedule(data.get("schedule"))
    if action == "change_schedule":
        return orchestrator.change_schedule()
    if action == "confirm":
        return orchestrator.confirm(data.get("method"))
    if action == "cancel":
        return orchestrator.cancel()
    if action == "restart":
        return orchestrator.restart()
    if action == "dismiss":
        return orchestrator.dismiss()
    raise PaymentValidationError(f"Unknown checkout action: {action}")


class HostedCaptureSurface:
    """
    Card capture form hosted by the client application.

    Mounting only hands the intent's client key to the browser, which renders
    the gateway's card form. When the form produces a payment method, the
    browser posts it back and ``complete`` attaches it to the intent and
    reports the result to the orchestrator.
    """

    def __init__(self, intent_client: IntentClient, *, public_key: str, stubbed: bool = False):
        self.intent_client = intent_client
        self.public_key = public_key
        self.stubbed = stubbed
        self.handle: Optional[CaptureHandle] = None

    def mount(self, handle: CaptureHandle) -> None:
        if not self.public_key and not self.stubbed:
            raise CaptureSurfaceUnavailable("Card payments are not configured. Please choose another method.")
        self.handle = handle

    def complete(self, orchestrator: PaymentOrchestrator, *, intent_id: str, payment_method_id: str) -> CheckoutState:
        state = orchestrator.state
        if state.phase is not Phase.MOUNTING_DIRECT_FORM or not state.owns_intent(intent_id):
            logger.info("Ignoring card capture for intent %s in phase %s", intent_id, state.phase.value)
            return state
        try:
            outcome = self.intent_client.attach_method(
                intent_id,
                payment_method_id,
                client_key=state.intent.client_key,
                return_url=orchestrator.return_url_for(intent_id),
            )
        except GatewayError as exc:
            logger.warning("Card attach failed for intent %s: %s", intent_id, exc)
            error = exc if isinstance(exc, GatewayAttachError) else GatewayAttachError(exc.message)
            return orchestrator.capture_failed(intent_id, CheckoutError.from_exception(error))
        if outcome.status == SUCCEEDED:
            return orchestrator.capture_succeeded(intent_id, outcome.payment_method_id, outcome.status)
        return orchestrator.capture_failed(
            intent_id,
            CheckoutError.from_exception(GatewayAsyncFailure(outcome.status or "unknown")),
        )

    def report_error(self, orchestrator: PaymentOrchestrator, *, intent_id: str, message: str) -> CheckoutState:
        """The browser form failed on its own (declined card, validation, SDK load)."""
        return orchestrator.capture_failed(intent_id, CheckoutError.from_exception(GatewayAttachError(message)))

    def report_unavailable(self, orchestrator: PaymentOrchestrator, *, intent_id: str, message: str = "") -> CheckoutState:
        return orchestrator.capture_unavailable(intent_id, CaptureSurfaceUnavailable(message or None))
