from rest_framework import serializers

from bookings.models import Booking
from payments.services.amounts import BookingSnapshot, resolve


class BookingSerializer(serializers.ModelSerializer):
    client_email = serializers.EmailField(source="client.email", read_only=True)
    deposit_amount = serializers.SerializerMethodField()
    remaining_balance = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    payment_options = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            "id",
            "client_email",
            "package_name",
            "event_date",
            "total_amount",
            "deposit_amount",
            "total_paid",
            "remaining_balance",
            "booking_status",
            "payment_status",
            "payment_options",
            "created_at",
        ]
        read_only_fields = fields

    def get_deposit_amount(self, obj: Booking) -> str:
        return str(BookingSnapshot.from_booking(obj).deposit)

    def get_payment_options(self, obj: Booking):
        resolution = resolve(BookingSnapshot.from_booking(obj))
        return {
            "schedules": {kind.value: str(amount) for kind, amount in resolution.amounts.items()},
            "default_schedule": resolution.default.value if resolution.default else None,
            "full_fallback": resolution.full_fallback,
        }
