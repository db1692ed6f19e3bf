"""
Payment serializers.

Output serializers expose payment rows to the admin API; input serializers
validate the public initiation, verification and manual-proof requests and
the admin validation decision.
"""

from decimal import Decimal

from rest_framework import serializers

from orders.models import CAMEROON_PHONE_REGEX

from .models import Payment


class PaymentSerializer(serializers.ModelSerializer):
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    order_number = serializers.CharField(source='order.order_number', read_only=True)
    can_be_retried = serializers.BooleanField(read_only=True)

    class Meta:
        model = Payment
        fields = [
            'id',
            'order',
            'order_number',
            'transaction_id',
            'external_transaction_id',
            'payment_method',
            'provider',
            'kind',
            'amount',
            'currency',
            'status',
            'status_display',
            'customer_phone',
            'customer_name',
            'provider_data',
            'initiated_at',
            'completed_at',
            'failed_at',
            'cancelled_at',
            'verified_at',
            'failure_reason',
            'description',
            'notes',
            'retry_count',
            'max_retries',
            'can_be_retried',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class PaymentSummarySerializer(serializers.ModelSerializer):
    """Compact form nested in order payloads."""

    class Meta:
        model = Payment
        fields = [
            'id',
            'transaction_id',
            'external_transaction_id',
            'payment_method',
            'provider',
            'kind',
            'amount',
            'status',
            'completed_at',
            'created_at',
        ]
        read_only_fields = fields


class PaymentInitiateSerializer(serializers.Serializer):
    """
    Start a mobile-money collection for an order.

    ``amount`` defaults to the order's unassigned payment (or its total).
    """

    order_id = serializers.UUIDField()
    phone_number = serializers.RegexField(CAMEROON_PHONE_REGEX, required=False)
    payment_method = serializers.ChoiceField(
        choices=[Payment.Method.MTN_MOMO, Payment.Method.ORANGE_MONEY],
    )
    provider = serializers.CharField(required=False, allow_blank=True)
    amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal('1'),
        required=False,
    )
    kind = serializers.ChoiceField(choices=Payment.Kind.choices, required=False)


class PaymentVerifySerializer(serializers.Serializer):
    transaction_id = serializers.CharField(max_length=100)
    provider = serializers.CharField(max_length=50)


class ManualPaymentSerializer(serializers.Serializer):
    """Out-of-band payment proof (e.g. a WhatsApp screenshot reference)."""

    order_id = serializers.UUIDField()
    amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal('1'),
        required=False,
    )
    currency = serializers.CharField(max_length=3, required=False)
    reference = serializers.CharField(max_length=255, required=False, allow_blank=True)
    sender_phone = serializers.CharField(max_length=20, required=False, allow_blank=True)
    proof_url = serializers.CharField(max_length=500, required=False, allow_blank=True)
    kind = serializers.ChoiceField(choices=Payment.Kind.choices, required=False)


class PaymentValidationSerializer(serializers.Serializer):
    approved = serializers.BooleanField()
    notes = serializers.CharField(required=False, allow_blank=True, default='')
