import logging

from django.shortcuts import get_object_or_404
from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from bookings.models import Booking
from payments.exceptions import CheckoutConflict, GatewayError, PaymentValidationError
from payments.models import CheckoutSession, Payment
from payments.serializers import (
    CaptureResultSerializer,
    CheckoutEventSerializer,
    PaymentLinkRequestSerializer,
    PaymentLinkSerializer,
    PaymentSerializer,
)
from payments.services.checkout import (
    apply_capture_result,
    apply_checkout_action,
    create_booking_payment_link,
    load_checkout,
    refresh_payment_status,
    start_checkout,
)

logger = logging.getLogger(__name__)


class IsBookingClientOrStaff(permissions.BasePermission):
    """Clients reach their own bookings (and what hangs off them); staff reach all."""

    def has_object_permission(self, request, view, obj):
        booking = obj if isinstance(obj, Booking) else obj.booking
        if request.user.is_staff:
            return True
        return booking.client_id == request.user.id


class BookingScopedView(APIView):
    permission_classes = [permissions.IsAuthenticated, IsBookingClientOrStaff]

    def get_booking(self, booking_id) -> Booking:
        booking = get_object_or_404(Booking, pk=booking_id)
        self.check_object_permissions(self.request, booking)
        return booking

    def get_session(self, session_id) -> CheckoutSession:
        session = get_object_or_404(CheckoutSession.objects.select_related("booking"), pk=session_id)
        self.check_object_permissions(self.request, session)
        return session


def _validation_error(exc: PaymentValidationError) -> Response:
    return Response({"detail": exc.message, "code": exc.code}, status=status.HTTP_400_BAD_REQUEST)


def _conflict(exc: CheckoutConflict) -> Response:
    return Response({"detail": exc.message, "code": exc.code}, status=status.HTTP_409_CONFLICT)


class CheckoutStartView(BookingScopedView):
    """Open a checkout session for a booking and return its first view."""

    def post(self, request, booking_id, *args, **kwargs):
        booking = self.get_booking(booking_id)
        context = start_checkout(booking=booking, user=request.user)
        return Response(context.view(), status=status.HTTP_201_CREATED)


class CheckoutSessionView(BookingScopedView):
    def get(self, request, session_id, *args, **kwargs):
        session = self.get_session(session_id)
        return Response(load_checkout(session).view())

    def delete(self, request, session_id, *args, **kwargs):
        session = self.get_session(session_id)
        try:
            apply_checkout_action(session.pk, "dismiss")
        except CheckoutConflict as exc:
            return _conflict(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)


class CheckoutEventView(BookingScopedView):
    """Forward one user action (pick schedule, confirm method, cancel, ...) to the checkout."""

    def post(self, request, session_id, *args, **kwargs):
        session = self.get_session(session_id)
        serializer = CheckoutEventSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        action = data.pop("action")
        try:
            context = apply_checkout_action(session.pk, action, data)
        except PaymentValidationError as exc:
            return _validation_error(exc)
        except CheckoutConflict as exc:
            return _conflict(exc)
        return Response(context.view())


class CheckoutCaptureView(BookingScopedView):
    """Receive the result of the in-page card form for the session's current intent."""

    def post(self, request, session_id, *args, **kwargs):
        session = self.get_session(session_id)
        serializer = CaptureResultSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            context = apply_capture_result(session.pk, **serializer.validated_data)
        except CheckoutConflict as exc:
            return _conflict(exc)
        return Response(context.view())


class BookingPaymentListView(generics.ListAPIView):
    serializer_class = PaymentSerializer
    permission_classes = [permissions.IsAuthenticated, IsBookingClientOrStaff]
    filterset_fields = ["status", "payment_method"]
    ordering_fields = ["created_at", "amount"]

    def get_queryset(self):
        booking = get_object_or_404(Booking, pk=self.kwargs["booking_id"])
        self.check_object_permissions(self.request, booking)
        return booking.payments.all()


class PaymentStatusView(BookingScopedView):
    """Refresh a payment from the gateway, e.g. after returning from a wallet redirect."""

    def get(self, request, payment_id, *args, **kwargs):
        payment = get_object_or_404(Payment.objects.select_related("booking"), pk=payment_id)
        self.check_object_permissions(request, payment)
        try:
            payment = refresh_payment_status(payment)
        except GatewayError as exc:
            logger.exception("Failed to refresh payment %s: %s", payment.payment_intent_id, exc)
            return Response({"detail": exc.message}, status=status.HTTP_502_BAD_GATEWAY)
        return Response(PaymentSerializer(payment).data)


class PaymentLinkView(BookingScopedView):
    def post(self, request, booking_id, *args, **kwargs):
        booking = self.get_booking(booking_id)
        serializer = PaymentLinkRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        amount = serializer.validated_data.get("amount") or booking.total_amount
        if amount <= 0:
            return Response({"detail": "Amount is required."}, status=status.HTTP_400_BAD_REQUEST)
        try:
            link = create_booking_payment_link(
                booking,
                amount,
                description=serializer.validated_data.get("description", ""),
            )
        except GatewayError as exc:
            logger.exception("Failed to create payment link for booking #%s: %s", booking.pk, exc)
            return Response({"detail": exc.message}, status=status.HTTP_502_BAD_GATEWAY)
        return Response(PaymentLinkSerializer(link).data, status=status.HTTP_201_CREATED)
