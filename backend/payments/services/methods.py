from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from payments.exceptions import UnknownPaymentMethod


class MethodId(str, Enum):
    CARD = "card"
    GCASH = "gcash"
    MAYA = "maya"
    QR_PH = "qr_ph"
    BANK_TRANSFER = "bank_transfer"


class MethodMode(str, Enum):
    DIRECT = "direct"
    REDIRECT = "redirect"


@dataclass(frozen=True)
class PaymentMethod:
    id: MethodId
    mode: MethodMode
    label: str
    # Name the gateway uses for this method in payment_method_allowed / payment_methods.type.
    gateway_type: str

    @property
    def is_direct(self) -> bool:
        return self.mode is MethodMode.DIRECT


METHODS: tuple[PaymentMethod, ...] = (
    PaymentMethod(MethodId.CARD, MethodMode.DIRECT, "Credit/Debit Card", "card"),
    PaymentMethod(MethodId.GCASH, MethodMode.REDIRECT, "GCash", "gcash"),
    PaymentMethod(MethodId.MAYA, MethodMode.REDIRECT, "Maya", "paymaya"),
    PaymentMethod(MethodId.QR_PH, MethodMode.REDIRECT, "QR Ph", "qrph"),
    PaymentMethod(MethodId.BANK_TRANSFER, MethodMode.REDIRECT, "Bank Transfer", "dob"),
)

_BY_ID = {method.id: method for method in METHODS}
_BY_GATEWAY_TYPE = {method.gateway_type: method for method in METHODS}


def get_method(method_id: MethodId | str) -> PaymentMethod:
    try:
        return _BY_ID[MethodId(method_id)]
    except ValueError:
        raise UnknownPaymentMethod(f"Unsupported payment method: {method_id}") from None


def is_direct(method_id: MethodId | str) -> bool:
    return get_method(method_id).is_direct


def method_for_gateway_type(gateway_type: str | None) -> PaymentMethod | None:
    """Map a gateway payment method type (e.g. ``paymaya``) back to our catalog entry."""
    if not gateway_type:
        return None
    return _BY_GATEWAY_TYPE.get(gateway_type)
