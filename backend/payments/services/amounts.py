"""
Amount resolution for a booking.

Given a booking's totals and statuses, work out which payment schedules
(deposit, remaining balance, full amount) can be offered right now, how much
each one collects, and which one the checkout should preselect. Everything
here is a pure projection of the booking; nothing is cached or stored.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, FrozenSet, Optional

# Deposit collected when a booking has no explicit deposit amount.
DEFAULT_DEPOSIT_RATE = Decimal("0.30")

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


class ScheduleKind(str, Enum):
    DEPOSIT = "deposit"
    REMAINING = "remaining"
    FULL = "full"


# Booking statuses as stored on bookings.Booking.
PENDING = "Pending"
APPROVED = "Approved"
CONFIRMED = "Confirmed"
REMAINING_BALANCE_STATUSES = frozenset({APPROVED, CONFIRMED})

UNPAID = "unpaid"
PAID = "paid"


def to_amount(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class BookingSnapshot:
    """The booking fields the resolver reads, detached from the ORM."""

    total_amount: Decimal
    total_paid: Decimal
    booking_status: str
    payment_status: str
    deposit_amount: Optional[Decimal] = None

    @classmethod
    def from_booking(cls, booking) -> "BookingSnapshot":
        return cls(
            total_amount=to_amount(booking.total_amount),
            total_paid=to_amount(booking.total_paid),
            booking_status=booking.booking_status,
            payment_status=booking.payment_status,
            deposit_amount=(
                to_amount(booking.deposit_amount) if booking.deposit_amount is not None else None
            ),
        )

    @property
    def total(self) -> Decimal:
        return max(ZERO, to_amount(self.total_amount))

    @property
    def remaining_balance(self) -> Decimal:
        return max(ZERO, self.total - to_amount(self.total_paid))

    @property
    def deposit(self) -> Decimal:
        # An unset or zero deposit falls back to the policy rate.
        deposit = to_amount(self.deposit_amount)
        if deposit <= ZERO:
            deposit = to_amount(self.total * DEFAULT_DEPOSIT_RATE)
        return min(deposit, self.total)


@dataclass(frozen=True)
class Resolution:
    eligible: FrozenSet[ScheduleKind]
    amounts: Dict[ScheduleKind, Decimal] = field(default_factory=dict)
    default: Optional[ScheduleKind] = None
    # Nothing is eligible but the booking is unpaid with a positive total.
    full_fallback: bool = False
    full_amount: Decimal = ZERO

    def allows(self, schedule: ScheduleKind) -> bool:
        if schedule in self.eligible:
            return True
        return schedule is ScheduleKind.FULL and self.full_fallback

    def amount_for(self, schedule: ScheduleKind) -> Optional[Decimal]:
        if schedule in self.amounts:
            return self.amounts[schedule]
        if schedule is ScheduleKind.FULL and self.full_fallback:
            return self.full_amount
        return None


def resolve(booking: BookingSnapshot) -> Resolution:
    status = booking.booking_status
    payment_status = (booking.payment_status or UNPAID).lower()
    total = booking.total
    remaining = booking.remaining_balance

    candidates = {
        ScheduleKind.DEPOSIT: (
            status == PENDING and payment_status != PAID,
            booking.deposit,
        ),
        ScheduleKind.REMAINING: (
            status in REMAINING_BALANCE_STATUSES and remaining > ZERO,
            remaining,
        ),
        ScheduleKind.FULL: (
            payment_status != PAID and total > ZERO,
            total,
        ),
    }
    amounts = {
        kind: amount
        for kind, (allowed, amount) in candidates.items()
        if allowed and amount > ZERO
    }
    eligible = frozenset(amounts)

    if status == PENDING and payment_status == UNPAID:
        preferred = ScheduleKind.DEPOSIT
    elif remaining > ZERO:
        preferred = ScheduleKind.REMAINING
    else:
        preferred = ScheduleKind.FULL

    default = None
    for kind in (preferred, ScheduleKind.REMAINING, ScheduleKind.FULL, ScheduleKind.DEPOSIT):
        if kind in eligible:
            default = kind
            break

    full_fallback = not eligible and total > ZERO and to_amount(booking.total_paid) == ZERO
    return Resolution(
        eligible=eligible,
        amounts=amounts,
        default=default,
        full_fallback=full_fallback,
        full_amount=total if full_fallback else ZERO,
    )
