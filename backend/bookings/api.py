from rest_framework import permissions, viewsets

from bookings.models import Booking
from bookings.serializers import BookingSerializer


class BookingViewSet(viewsets.ReadOnlyModelViewSet):
    """Bookings visible to the caller: their own, or every booking for staff."""

    serializer_class = BookingSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ["booking_status", "payment_status"]

    def get_queryset(self):
        queryset = Booking.objects.select_related("client")
        if not self.request.user.is_staff:
            queryset = queryset.filter(client=self.request.user)
        return queryset
