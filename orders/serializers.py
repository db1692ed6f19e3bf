"""
Order serializers for the shop back-office API.

This module provides:
- Read serializers for orders with their lines and payments
- The public order-creation input, in the storefront's camelCase shape
- Admin inputs for status updates and order-level payment validation
"""

from rest_framework import serializers

from payments.models import Payment
from payments.serializers import PaymentSummarySerializer

from .models import CAMEROON_PHONE_REGEX, Order, OrderItem


class OrderItemSerializer(serializers.ModelSerializer):
    """
    Order line as snapshotted at order time.

    Product fields come from the snapshot columns, never from the live
    product row.
    """

    variant = serializers.CharField(source='variant_display', read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            'id',
            'product',
            'product_name',
            'product_sku',
            'product_image',
            'variant_size',
            'variant_color',
            'variant_material',
            'variant_extra',
            'variant',
            'unit_price',
            'quantity',
            'discount_amount',
            'total_price',
            'status',
            'created_at',
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer_full_name', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    item_count = serializers.IntegerField(source='items.count', read_only=True)

    class Meta:
        model = Order
        fields = [
            'id',
            'order_number',
            'status',
            'status_display',
            'payment_status',
            'payment_method',
            'delivery_option',
            'customer_name',
            'customer_email',
            'customer_phone',
            'total_amount',
            'remaining_balance',
            'currency',
            'item_count',
            'created_at',
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Full order detail with lines and payment attempts."""

    items = OrderItemSerializer(many=True, read_only=True)
    payments = PaymentSummarySerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source='customer_full_name', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    can_be_cancelled = serializers.BooleanField(read_only=True)
    can_be_shipped = serializers.BooleanField(read_only=True)

    class Meta:
        model = Order
        fields = [
            'id',
            'order_number',
            'status',
            'status_display',
            'payment_status',
            'payment_method',
            'delivery_option',
            'customer_first_name',
            'customer_last_name',
            'customer_name',
            'customer_email',
            'customer_phone',
            'billing_address',
            'shipping_address',
            'subtotal',
            'shipping_cost',
            'tax_amount',
            'discount_amount',
            'total_amount',
            'remaining_balance',
            'currency',
            'shipping_method',
            'tracking_number',
            'estimated_delivery',
            'confirmed_at',
            'shipped_at',
            'delivered_at',
            'cancelled_at',
            'completed_at',
            'notes',
            'admin_notes',
            'cancellation_reason',
            'can_be_cancelled',
            'can_be_shipped',
            'items',
            'payments',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class OrderLineInputSerializer(serializers.Serializer):
    id = serializers.IntegerField(source='product_id', min_value=1)
    quantity = serializers.IntegerField(min_value=1)
    size = serializers.CharField(max_length=50, required=False, allow_blank=True)
    color = serializers.CharField(max_length=50, required=False, allow_blank=True)
    material = serializers.CharField(max_length=50, required=False, allow_blank=True)
    extra = serializers.DictField(required=False)


class CustomerInputSerializer(serializers.Serializer):
    firstName = serializers.CharField(source='first_name', max_length=100)
    lastName = serializers.CharField(source='last_name', max_length=100)
    email = serializers.EmailField()
    phone = serializers.RegexField(
        CAMEROON_PHONE_REGEX,
        max_length=20,
        error_messages={'invalid': "Numéro de téléphone camerounais invalide"},
    )


class DeliveryInputSerializer(serializers.Serializer):
    address = serializers.CharField(max_length=255)
    city = serializers.CharField(max_length=100)
    quarter = serializers.CharField(max_length=100, required=False, allow_blank=True)
    landmark = serializers.CharField(max_length=255, required=False, allow_blank=True)
    instructions = serializers.CharField(required=False, allow_blank=True)


class OrderCreateSerializer(serializers.Serializer):
    """
    Public order placement.

    Prices, totals and stock are never taken from the client; only product
    ids, quantities and variant choices are.
    """

    items = OrderLineInputSerializer(many=True, allow_empty=False)
    customer = CustomerInputSerializer()
    delivery = DeliveryInputSerializer()
    paymentMethod = serializers.ChoiceField(
        source='payment_method',
        choices=Order.PaymentMethod.choices,
    )
    deliveryOnly = serializers.BooleanField(source='delivery_only', required=False, default=False)
    initiatePayment = serializers.BooleanField(source='initiate_payment', required=False, default=False)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if attrs.get('initiate_payment') and attrs['payment_method'] not in Payment.MOBILE_MONEY_METHODS:
            raise serializers.ValidationError(
                {'initiatePayment': "Seuls les paiements mobile money peuvent être initiés."}
            )
        return attrs


class OrderStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.Status.choices)
    notes = serializers.CharField(required=False, allow_blank=True)
    estimated_delivery = serializers.DateTimeField(required=False, allow_null=True)
    cancellation_reason = serializers.CharField(max_length=255, required=False, allow_blank=True)
