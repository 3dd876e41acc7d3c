from django.contrib import admin

from payments.models import Payment

from .models import Booking


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    fields = ("payment_intent_id", "payment_method", "schedule", "amount", "status", "paid_at")
    readonly_fields = fields
    can_delete = False


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ("package_name", "client", "total_amount", "total_paid", "booking_status", "payment_status")
    list_filter = ("booking_status", "payment_status")
    search_fields = ("package_name", "client__email")
    inlines = [PaymentInline]
