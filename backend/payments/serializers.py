from decimal import Decimal

from rest_framework import serializers

from payments.models import Payment
from payments.services.amounts import ScheduleKind
from payments.services.methods import MethodId
from payments.services.presentation import ACTIONS


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = [
            "id",
            "booking",
            "payment_intent_id",
            "payment_method_id",
            "payment_method",
            "schedule",
            "amount",
            "currency",
            "status",
            "failure_reason",
            "paid_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class CheckoutEventSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=ACTIONS)
    schedule = serializers.ChoiceField(choices=[kind.value for kind in ScheduleKind], required=False)
    method = serializers.ChoiceField(choices=[method.value for method in MethodId], required=False)

    def validate(self, attrs):
        action = attrs["action"]
        if action == "select_schedule" and not attrs.get("schedule"):
            raise serializers.ValidationError({"schedule": "Choose a payment schedule."})
        if action == "confirm" and not attrs.get("method"):
            raise serializers.ValidationError({"method": "Choose a payment method."})
        return attrs


class CaptureResultSerializer(serializers.Serializer):
    intent_id = serializers.CharField(max_length=200)
    payment_method_id = serializers.CharField(max_length=200, required=False, allow_blank=True)
    error = serializers.CharField(max_length=500, required=False, allow_blank=True)
    unavailable = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        if not attrs.get("payment_method_id") and not attrs.get("error") and not attrs.get("unavailable"):
            raise serializers.ValidationError(
                "Provide the payment method produced by the card form or the error it reported."
            )
        return attrs


class PaymentLinkRequestSerializer(serializers.Serializer):
    amount = serializers.DecimalField(
        max_digits=10,
        decimal_places=2,
        min_value=Decimal("0.01"),
        max_value=Decimal("99999999.99"),
        required=False,
    )
    description = serializers.CharField(max_length=255, required=False, allow_blank=True)


class PaymentLinkSerializer(serializers.Serializer):
    payment_link_id = serializers.CharField(source="link_id")
    checkout_url = serializers.URLField()
