from django.contrib import admin

from .models import CheckoutSession, Payment


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("payment_intent_id", "booking", "payment_method", "schedule", "amount", "status", "paid_at")
    list_filter = ("status", "payment_method", "schedule")
    search_fields = ("payment_intent_id", "payment_method_id", "booking__package_name")
    readonly_fields = ("payment_intent_id", "payment_method_id", "metadata", "created_at", "updated_at")


@admin.register(CheckoutSession)
class CheckoutSessionAdmin(admin.ModelAdmin):
    list_display = ("id", "booking", "created_by", "updated_at")
    readonly_fields = ("state", "created_at", "updated_at")
