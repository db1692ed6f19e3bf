from django.contrib import admin

from .models import Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = [
        'product', 'product_name', 'product_sku', 'unit_price', 'quantity',
        'discount_amount', 'total_price', 'variant_size', 'variant_color',
        'variant_material', 'variant_extra', 'status', 'created_at',
    ]
    can_delete = False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = [
        'order_number', 'customer_email', 'status', 'payment_status',
        'delivery_option', 'total_amount', 'remaining_balance', 'created_at',
    ]
    list_filter = ['status', 'payment_status', 'delivery_option', 'payment_method', 'created_at']
    search_fields = ['order_number', 'customer_email', 'customer_phone', 'customer_last_name']
    readonly_fields = [
        'id', 'order_number', 'status', 'payment_status', 'subtotal', 'shipping_cost',
        'total_amount', 'remaining_balance', 'tracking_number', 'confirmed_at',
        'shipped_at', 'delivered_at', 'cancelled_at', 'completed_at',
        'created_at', 'updated_at',
    ]
    inlines = [OrderItemInline]

    def has_delete_permission(self, request, obj=None):
        return False
