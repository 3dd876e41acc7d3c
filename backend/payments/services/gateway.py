from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from typing import Any, Dict, Iterable, Optional, Protocol
from uuid import uuid4

import httpx
from django.conf import settings

from payments.exceptions import (
    GatewayAttachError,
    GatewayCreateError,
    GatewayError,
    GatewayLinkError,
    GatewayLookupError,
)
from payments.services.amounts import to_amount
from payments.services.methods import MethodId, get_method

logger = logging.getLogger(__name__)

# Intent statuses as seen by the orchestrator. The gateway's
# ``awaiting_next_action`` is reported as REQUIRES_ACTION.
SUCCEEDED = "succeeded"
REQUIRES_ACTION = "requires_action"
PROCESSING = "processing"
AWAITING_PAYMENT_METHOD = "awaiting_payment_method"

_GATEWAY_STATUS_ALIASES = {
    "awaiting_next_action": REQUIRES_ACTION,
}


@dataclass(frozen=True)
class CreatedIntent:
    intent_id: str
    client_key: str
    amount: Decimal
    currency: str


@dataclass(frozen=True)
class AttachOutcome:
    status: str
    payment_method_id: str
    redirect_url: Optional[str] = None


@dataclass(frozen=True)
class IntentSnapshot:
    intent_id: str
    status: str
    amount: Decimal
    payment_method_id: Optional[str] = None
    payment_method_type: Optional[str] = None
    failure_reason: Optional[str] = None


@dataclass(frozen=True)
class PaymentLink:
    link_id: str
    checkout_url: str


class IntentClient(Protocol):
    def create_intent(
        self,
        amount: Decimal,
        methods: Iterable[MethodId],
        *,
        currency: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> CreatedIntent: ...

    def create_payment_method(self, method_id: MethodId) -> str: ...

    def attach_method(
        self,
        intent_id: str,
        payment_method_id: str,
        *,
        client_key: str,
        return_url: str,
    ) -> AttachOutcome: ...

    def retrieve_intent(self, intent_id: str) -> IntentSnapshot: ...

    def create_payment_link(
        self,
        amount: Decimal,
        *,
        description: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PaymentLink: ...


def to_centavos(amount: Decimal) -> int:
    return int(to_amount(amount) * 100)


def from_centavos(value) -> Decimal:
    return to_amount(Decimal(int(value or 0)) / 100)


def normalize_status(status: Optional[str]) -> str:
    status = (status or "").lower()
    return _GATEWAY_STATUS_ALIASES.get(status, status)


class PayMongoIntentClient:
    """
    Thin HTTP client for the PayMongo payment intent API.

    Every call is bounded by ``timeout``; transport failures, timeouts and
    non-2xx responses surface as the GatewayError subclass that matches the
    operation being attempted.
    """

    def __init__(
        self,
        secret_key: str,
        *,
        base_url: str = "https://api.paymongo.com/v1",
        timeout: float = 30.0,
        http_client: Optional[httpx.Client] = None,
    ):
        if not secret_key:
            raise RuntimeError("PAYMONGO_SECRET_KEY is not configured.")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = http_client or httpx.Client(timeout=timeout)
        self._auth = httpx.BasicAuth(secret_key, "")

    def _request(
        self,
        method: str,
        path: str,
        error_class: type[GatewayError],
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send a request and return the ``data`` object of the JSON:API style response."""
        url = f"{self.base_url}{path}"
        try:
            response = self._client.request(method, url, json=json, auth=self._auth)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as exc:
            logger.warning("PayMongo %s %s timed out after %ss", method, path, self.timeout)
            raise error_class(f"{error_class.default_message} The gateway timed out.") from exc
        except httpx.HTTPStatusError as exc:
            detail = _error_detail(exc.response)
            logger.error(
                "PayMongo %s %s returned %s: %s",
                method,
                path,
                exc.response.status_code,
                detail,
            )
            raise error_class(f"{error_class.default_message} {detail}".strip()) from exc
        except httpx.RequestError as exc:
            logger.exception("PayMongo %s %s failed: %s", method, path, exc)
            raise error_class(f"{error_class.default_message} {exc}") from exc
        except ValueError as exc:
            logger.exception("PayMongo %s %s returned malformed JSON", method, path)
            raise error_class() from exc

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict) or "id" not in data or not isinstance(data.get("attributes"), dict):
            logger.error("PayMongo %s %s returned an unexpected body: %.200s", method, path, body)
            raise error_class(f"{error_class.default_message} Unexpected gateway response.")
        return data

    def _attribute(self, data: Dict[str, Any], key: str, error_class: type[GatewayError]):
        value = data["attributes"].get(key)
        if value is None:
            logger.error("PayMongo response for %s is missing %s", data["id"], key)
            raise error_class(f"{error_class.default_message} Unexpected gateway response.")
        return value

    def create_intent(self, amount, methods, *, currency, metadata=None) -> CreatedIntent:
        payload = {
            "data": {
                "attributes": {
                    "amount": to_centavos(amount),
                    "currency": currency,
                    "capture_type": "automatic",
                    "payment_method_allowed": [get_method(m).gateway_type for m in methods],
                    "metadata": metadata or {},
                }
            }
        }
        data = self._request("POST", "/payment_intents", GatewayCreateError, json=payload)
        return CreatedIntent(
            intent_id=data["id"],
            client_key=self._attribute(data, "client_key", GatewayCreateError),
            amount=from_centavos(self._attribute(data, "amount", GatewayCreateError)),
            currency=data["attributes"].get("currency") or currency,
        )

    def create_payment_method(self, method_id) -> str:
        payload = {"data": {"attributes": {"type": get_method(method_id).gateway_type}}}
        data = self._request("POST", "/payment_methods", GatewayAttachError, json=payload)
        return data["id"]

    def attach_method(self, intent_id, payment_method_id, *, client_key, return_url) -> AttachOutcome:
        payload = {
            "data": {
                "attributes": {
                    "payment_method": payment_method_id,
                    "client_key": client_key,
                    "return_url": return_url,
                }
            }
        }
        data = self._request(
            "POST",
            f"/payment_intents/{intent_id}/attach",
            GatewayAttachError,
            json=payload,
        )
        status = self._attribute(data, "status", GatewayAttachError)
        attributes = data["attributes"]
        next_action = attributes.get("next_action") or {}
        redirect = next_action.get("redirect") or {}
        return AttachOutcome(
            status=normalize_status(status),
            payment_method_id=payment_method_id,
            redirect_url=redirect.get("url"),
        )

    def retrieve_intent(self, intent_id) -> IntentSnapshot:
        data = self._request("GET", f"/payment_intents/{intent_id}", GatewayLookupError)
        status = self._attribute(data, "status", GatewayLookupError)
        attributes = data["attributes"]
        payments = attributes.get("payments") or []
        method_id = None
        method_type = None
        if payments:
            source = (payments[-1].get("attributes") or {}).get("source") or {}
            method_id = source.get("id")
            method_type = source.get("type")
        last_error = attributes.get("last_payment_error") or {}
        return IntentSnapshot(
            intent_id=data["id"],
            status=normalize_status(status),
            amount=from_centavos(attributes.get("amount")),
            payment_method_id=method_id,
            payment_method_type=method_type,
            failure_reason=last_error.get("failed_message") or last_error.get("message"),
        )

    def create_payment_link(self, amount, *, description, metadata=None) -> PaymentLink:
        payload = {
            "data": {
                "attributes": {
                    "amount": to_centavos(amount),
                    "description": description,
                    "remarks": (metadata or {}).get("booking_id", ""),
                }
            }
        }
        data = self._request("POST", "/links", GatewayLinkError, json=payload)
        return PaymentLink(
            link_id=data["id"],
            checkout_url=self._attribute(data, "checkout_url", GatewayLinkError),
        )


def _error_detail(response: httpx.Response) -> str:
    try:
        errors = response.json().get("errors") or []
    except ValueError:
        return response.text[:200]
    details = [error.get("detail") or error.get("code") or "" for error in errors]
    return "; ".join(d for d in details if d)


def build_checkout_preview_url(*, intent_id: str, method: str) -> str:
    return (
        f"{settings.FRONTEND_URL.rstrip('/')}/payments/preview?"
        f"intent={intent_id}&method={method}"
    )


class StubIntentClient:
    """
    Stand-in for PayMongo when running in stub mode.

    Tests and local development do not hit the gateway; instead, we return
    predictable identifiers so the rest of the checkout flow behaves as if
    PayMongo responded. Cards succeed inline, wallets ask for a redirect to a
    local preview page.
    """

    def __init__(self):
        self._intents: Dict[str, Dict[str, Any]] = {}

    def create_intent(self, amount, methods, *, currency, metadata=None) -> CreatedIntent:
        intent_id = f"pi_test_{uuid4().hex}"
        self._intents[intent_id] = {"amount": to_amount(amount), "status": AWAITING_PAYMENT_METHOD}
        return CreatedIntent(
            intent_id=intent_id,
            client_key=f"{intent_id}_client_{uuid4().hex[:12]}",
            amount=to_amount(amount),
            currency=currency,
        )

    def create_payment_method(self, method_id) -> str:
        return f"pm_test_{get_method(method_id).gateway_type}_{uuid4().hex[:12]}"

    def attach_method(self, intent_id, payment_method_id, *, client_key, return_url) -> AttachOutcome:
        intent = self._intents.setdefault(intent_id, {"amount": Decimal("0.00")})
        intent["payment_method_id"] = payment_method_id
        if payment_method_id.startswith("pm_test_card") or not payment_method_id.startswith("pm_test_"):
            intent["status"] = SUCCEEDED
            return AttachOutcome(status=SUCCEEDED, payment_method_id=payment_method_id)
        method = payment_method_id.split("_")[2]
        intent["status"] = REQUIRES_ACTION
        return AttachOutcome(
            status=REQUIRES_ACTION,
            payment_method_id=payment_method_id,
            redirect_url=build_checkout_preview_url(intent_id=intent_id, method=method),
        )

    def retrieve_intent(self, intent_id) -> IntentSnapshot:
        intent = self._intents.get(intent_id, {})
        return IntentSnapshot(
            intent_id=intent_id,
            status=intent.get("status", AWAITING_PAYMENT_METHOD),
            amount=intent.get("amount", Decimal("0.00")),
            payment_method_id=intent.get("payment_method_id"),
        )

    def create_payment_link(self, amount, *, description, metadata=None) -> PaymentLink:
        link_id = f"link_test_{uuid4().hex}"
        return PaymentLink(
            link_id=link_id,
            checkout_url=f"{settings.FRONTEND_URL.rstrip('/')}/payments/preview?link={link_id}",
        )


def _get_secret_key() -> Optional[str]:
    key = getattr(settings, "PAYMONGO_SECRET_KEY", "")
    return key or None


def should_use_stub() -> bool:
    if getattr(settings, "PAYMONGO_USE_STUB", False):
        return True
    return _get_secret_key() is None


@lru_cache(maxsize=None)
def get_intent_client() -> IntentClient:
    """
    Return the process-wide gateway client, building it on first use.

    The client (and its connection pool) is created once per process. Tests
    that change gateway settings call ``get_intent_client.cache_clear()``.
    """

    if should_use_stub():
        if _get_secret_key():
            logger.warning(
                "PAYMONGO_USE_STUB is on while PAYMONGO_SECRET_KEY is set; "
                "card payments will succeed without reaching PayMongo."
            )
        else:
            logger.info("PayMongo stub mode enabled; no gateway calls will be made.")
        return StubIntentClient()
    return PayMongoIntentClient(
        _get_secret_key(),
        base_url=settings.PAYMONGO_BASE_URL,
        timeout=settings.PAYMONGO_TIMEOUT,
    )
