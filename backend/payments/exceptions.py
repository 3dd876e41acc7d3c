class PaymentError(Exception):
    """Base class for checkout failures. `code` is what the client sees."""

    code = "payment_error"
    default_message = "Payment failed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class PaymentValidationError(PaymentError):
    code = "validation"
    default_message = "Invalid payment amount."


class UnknownPaymentMethod(PaymentValidationError):
    default_message = "Unsupported payment method."


class GatewayError(PaymentError):
    code = "gateway_error"
    default_message = "The payment gateway could not complete the request."


class GatewayCreateError(GatewayError):
    code = "gateway_create"
    default_message = "Failed to create payment intent."


class GatewayAttachError(GatewayError):
    code = "gateway_attach"
    default_message = "Failed to attach payment method."


class GatewayLookupError(GatewayError):
    code = "gateway_lookup"
    default_message = "Failed to retrieve payment intent."


class GatewayLinkError(GatewayError):
    code = "gateway_link"
    default_message = "Failed to create payment link."


class GatewayAsyncFailure(PaymentError):
    """An attach that came back with a status other than succeeded or a redirect."""

    code = "gateway_async"

    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Payment status: {status}")


class CaptureSurfaceUnavailable(PaymentError):
    code = "sdk_unavailable"
    default_message = "The payment form could not be loaded. Please try again."


class CheckoutConflict(PaymentError):
    """Another request changed the checkout session first."""

    code = "conflict"
    default_message = "This checkout was updated elsewhere. Reload it and try again."
