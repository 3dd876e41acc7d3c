from django.contrib import admin
from django.urls import include, path
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from bookings.api import BookingViewSet
from payments.api import (
    BookingPaymentListView,
    CheckoutCaptureView,
    CheckoutEventView,
    CheckoutSessionView,
    CheckoutStartView,
    PaymentLinkView,
    PaymentStatusView,
)

router = DefaultRouter()
router.register(r"bookings", BookingViewSet, basename="booking")

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/auth/token/", TokenObtainPairView.as_view(), name="auth-token"),
    path("api/auth/token/refresh/", TokenRefreshView.as_view(), name="auth-refresh"),
    path(
        "api/bookings/<int:booking_id>/checkout/",
        CheckoutStartView.as_view(),
        name="booking-checkout",
    ),
    path(
        "api/bookings/<int:booking_id>/payments/",
        BookingPaymentListView.as_view(),
        name="booking-payments",
    ),
    path(
        "api/bookings/<int:booking_id>/payment-link/",
        PaymentLinkView.as_view(),
        name="booking-payment-link",
    ),
    path("api/", include(router.urls)),
    path(
        "api/checkout/<uuid:session_id>/",
        CheckoutSessionView.as_view(),
        name="checkout-session",
    ),
    path(
        "api/checkout/<uuid:session_id>/events/",
        CheckoutEventView.as_view(),
        name="checkout-events",
    ),
    path(
        "api/checkout/<uuid:session_id>/capture/",
        CheckoutCaptureView.as_view(),
        name="checkout-capture",
    ),
    path(
        "api/payments/<int:payment_id>/status/",
        PaymentStatusView.as_view(),
        name="payment-status",
    ),
]
