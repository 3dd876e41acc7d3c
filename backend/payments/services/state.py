"""
Checkout state machine.

``CheckoutState`` is an immutable snapshot of one payment UI session and
``transition`` is the only way to move between snapshots. Events that make
no sense in the current phase leave the state untouched, which is what keeps
duplicate clicks and late gateway callbacks harmless.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Optional

from payments.exceptions import PaymentError
from payments.services.amounts import ScheduleKind, to_amount
from payments.services.methods import MethodId

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    SELECTING_SCHEDULE = "selecting_schedule"
    SELECTING_METHOD = "selecting_method"
    CREATING_INTENT = "creating_intent"
    ATTACHING_METHOD = "attaching_method"
    MOUNTING_DIRECT_FORM = "mounting_direct_form"
    AWAITING_REDIRECT = "awaiting_redirect"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


# No event leaves these phases; a new payment needs a new session.
SINK_PHASES = frozenset({Phase.SUCCEEDED, Phase.CANCELLED})
# A gateway round-trip is outstanding.
IN_FLIGHT_PHASES = frozenset({Phase.CREATING_INTENT, Phase.ATTACHING_METHOD})


@dataclass(frozen=True)
class IntentRef:
    intent_id: str
    client_key: str


@dataclass(frozen=True)
class CheckoutError:
    code: str
    message: str

    @classmethod
    def from_exception(cls, exc: PaymentError) -> "CheckoutError":
        return cls(code=exc.code, message=exc.message)


@dataclass(frozen=True)
class PaymentResult:
    intent_id: str
    payment_method_id: str
    status: str
    amount: Decimal
    schedule: ScheduleKind
    method: MethodId


@dataclass(frozen=True)
class CheckoutState:
    phase: Phase = Phase.SELECTING_SCHEDULE
    schedule: Optional[ScheduleKind] = None
    amount: Optional[Decimal] = None
    method: Optional[MethodId] = None
    attempt: int = 0
    intent: Optional[IntentRef] = None
    redirect_url: Optional[str] = None
    error: Optional[CheckoutError] = None
    result: Optional[PaymentResult] = None

    @property
    def is_sink(self) -> bool:
        return self.phase in SINK_PHASES

    @property
    def is_busy(self) -> bool:
        return self.phase in IN_FLIGHT_PHASES

    def owns_intent(self, intent_id: str) -> bool:
        return self.intent is not None and self.intent.intent_id == intent_id

    def to_dict(self) -> Dict[str, Any]:
        result = None
        if self.result is not None:
            result = {
                "intent_id": self.result.intent_id,
                "payment_method_id": self.result.payment_method_id,
                "status": self.result.status,
                "amount": str(self.result.amount),
                "schedule": self.result.schedule.value,
                "method": self.result.method.value,
            }
        return {
            "phase": self.phase.value,
            "schedule": self.schedule.value if self.schedule else None,
            "amount": str(self.amount) if self.amount is not None else None,
            "method": self.method.value if self.method else None,
            "attempt": self.attempt,
            "intent": (
                {"intent_id": self.intent.intent_id, "client_key": self.intent.client_key}
                if self.intent
                else None
            ),
            "redirect_url": self.redirect_url,
            "error": (
                {"code": self.error.code, "message": self.error.message} if self.error else None
            ),
            "result": result,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CheckoutState":
        if not data:
            return cls()
        result = data.get("result")
        return cls(
            phase=Phase(data.get("phase", Phase.SELECTING_SCHEDULE.value)),
            schedule=ScheduleKind(data["schedule"]) if data.get("schedule") else None,
            amount=to_amount(data["amount"]) if data.get("amount") is not None else None,
            method=MethodId(data["method"]) if data.get("method") else None,
            attempt=int(data.get("attempt") or 0),
            intent=IntentRef(**data["intent"]) if data.get("intent") else None,
            redirect_url=data.get("redirect_url"),
            error=CheckoutError(**data["error"]) if data.get("error") else None,
            result=(
                PaymentResult(
                    intent_id=result["intent_id"],
                    payment_method_id=result["payment_method_id"],
                    status=result["status"],
                    amount=to_amount(result["amount"]),
                    schedule=ScheduleKind(result["schedule"]),
                    method=MethodId(result["method"]),
                )
                if result
                else None
            ),
        )


# Events


@dataclass(frozen=True)
class ScheduleSelected:
    schedule: ScheduleKind
    amount: Optional[Decimal]


@dataclass(frozen=True)
class ScheduleChangeRequested:
    pass


@dataclass(frozen=True)
class MethodConfirmed:
    method: MethodId


@dataclass(frozen=True)
class IntentCreated:
    attempt: int
    intent: IntentRef


@dataclass(frozen=True)
class IntentCreateFailed:
    attempt: int
    error: CheckoutError


@dataclass(frozen=True)
class DirectFormMounted:
    intent_id: str


@dataclass(frozen=True)
class CaptureSurfaceFailed:
    intent_id: str
    error: CheckoutError


@dataclass(frozen=True)
class CaptureSucceeded:
    intent_id: str
    result: PaymentResult


@dataclass(frozen=True)
class CaptureFailed:
    intent_id: str
    error: CheckoutError


@dataclass(frozen=True)
class MethodAttached:
    intent_id: str
    result: PaymentResult


@dataclass(frozen=True)
class RedirectRequired:
    intent_id: str
    url: str


@dataclass(frozen=True)
class AttachUnresolved:
    intent_id: str
    error: CheckoutError


@dataclass(frozen=True)
class AttachFailed:
    intent_id: str
    error: CheckoutError


@dataclass(frozen=True)
class CancelRequested:
    pass


@dataclass(frozen=True)
class RestartRequested:
    pass


@dataclass(frozen=True)
class Dismissed:
    pass


INVALID_AMOUNT = CheckoutError(code="validation", message="Invalid payment amount")


def _to_method_selection(state: CheckoutState, error: Optional[CheckoutError] = None) -> CheckoutState:
    return replace(
        state,
        phase=Phase.SELECTING_METHOD,
        intent=None,
        redirect_url=None,
        result=None,
        error=error,
    )


def _on_schedule_selected(state, event: ScheduleSelected):
    if state.phase is not Phase.SELECTING_SCHEDULE:
        return None
    return replace(
        state,
        phase=Phase.SELECTING_METHOD,
        schedule=event.schedule,
        amount=event.amount,
        error=None,
    )


def _on_schedule_change(state, event):
    if state.phase is not Phase.SELECTING_METHOD:
        return None
    return replace(state, phase=Phase.SELECTING_SCHEDULE, schedule=None, amount=None, error=None)


def _on_method_confirmed(state, event: MethodConfirmed):
    if state.phase is not Phase.SELECTING_METHOD:
        return None
    if state.amount is None or state.amount <= 0:
        return replace(state, method=event.method, error=INVALID_AMOUNT)
    return replace(
        state,
        phase=Phase.CREATING_INTENT,
        method=event.method,
        attempt=state.attempt + 1,
        intent=None,
        error=None,
    )


def _on_intent_created(state, event: IntentCreated):
    if state.phase is not Phase.CREATING_INTENT or event.attempt != state.attempt:
        return None
    return replace(state, phase=Phase.ATTACHING_METHOD, intent=event.intent)


def _on_intent_create_failed(state, event: IntentCreateFailed):
    if state.phase is not Phase.CREATING_INTENT or event.attempt != state.attempt:
        return None
    return _to_method_selection(state, event.error)


def _on_direct_form_mounted(state, event: DirectFormMounted):
    if state.phase is not Phase.ATTACHING_METHOD or not state.owns_intent(event.intent_id):
        return None
    return replace(state, phase=Phase.MOUNTING_DIRECT_FORM)


def _on_capture_surface_failed(state, event: CaptureSurfaceFailed):
    if state.phase not in (Phase.ATTACHING_METHOD, Phase.MOUNTING_DIRECT_FORM):
        return None
    if not state.owns_intent(event.intent_id):
        return None
    return _to_method_selection(state, event.error)


def _on_capture_succeeded(state, event: CaptureSucceeded):
    if state.phase is not Phase.MOUNTING_DIRECT_FORM or not state.owns_intent(event.intent_id):
        return None
    return replace(state, phase=Phase.SUCCEEDED, result=event.result, error=None)


def _on_capture_failed(state, event: CaptureFailed):
    if state.phase is not Phase.MOUNTING_DIRECT_FORM or not state.owns_intent(event.intent_id):
        return None
    return replace(state, phase=Phase.FAILED, error=event.error)


def _on_method_attached(state, event: MethodAttached):
    if state.phase is not Phase.ATTACHING_METHOD or not state.owns_intent(event.intent_id):
        return None
    return replace(state, phase=Phase.SUCCEEDED, result=event.result, error=None)


def _on_redirect_required(state, event: RedirectRequired):
    if state.phase is not Phase.ATTACHING_METHOD or not state.owns_intent(event.intent_id):
        return None
    return replace(state, phase=Phase.AWAITING_REDIRECT, redirect_url=event.url)


def _on_attach_unresolved(state, event: AttachUnresolved):
    if state.phase is not Phase.ATTACHING_METHOD or not state.owns_intent(event.intent_id):
        return None
    return replace(state, phase=Phase.FAILED, error=event.error)


def _on_attach_failed(state, event: AttachFailed):
    if state.phase is not Phase.ATTACHING_METHOD or not state.owns_intent(event.intent_id):
        return None
    return _to_method_selection(state, event.error)


def _on_cancel(state, event):
    if state.phase in (Phase.SELECTING_SCHEDULE, Phase.SELECTING_METHOD):
        return replace(state, error=None)
    # Schedule and amount survive; they are still valid for the same booking.
    return _to_method_selection(state)


def _on_restart(state, event):
    if state.phase is not Phase.FAILED:
        return None
    return _to_method_selection(state)


def _on_dismissed(state, event):
    return replace(state, phase=Phase.CANCELLED, intent=None, redirect_url=None)


_HANDLERS: Dict[type, Callable[[CheckoutState, Any], Optional[CheckoutState]]] = {
    ScheduleSelected: _on_schedule_selected,
    ScheduleChangeRequested: _on_schedule_change,
    MethodConfirmed: _on_method_confirmed,
    IntentCreated: _on_intent_created,
    IntentCreateFailed: _on_intent_create_failed,
    DirectFormMounted: _on_direct_form_mounted,
    CaptureSurfaceFailed: _on_capture_surface_failed,
    CaptureSucceeded: _on_capture_succeeded,
    CaptureFailed: _on_capture_failed,
    MethodAttached: _on_method_attached,
    RedirectRequired: _on_redirect_required,
    AttachUnresolved: _on_attach_unresolved,
    AttachFailed: _on_attach_failed,
    CancelRequested: _on_cancel,
    RestartRequested: _on_restart,
    Dismissed: _on_dismissed,
}


def transition(state: CheckoutState, event) -> CheckoutState:
    """Return the state that follows ``event``; inapplicable events return ``state`` itself."""
    if state.is_sink:
        return state
    handler = _HANDLERS.get(type(event))
    next_state = handler(state, event) if handler else None
    if next_state is None:
        logger.debug("Ignoring %s in phase %s", type(event).__name__, state.phase.value)
        return state
    return next_state
