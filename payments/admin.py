from django.contrib import admin

from .models import Payment


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = [
        'transaction_id', 'order', 'provider', 'payment_method', 'kind',
        'amount', 'status', 'retry_count', 'created_at',
    ]
    list_filter = ['status', 'provider', 'payment_method', 'kind']
    search_fields = ['transaction_id', 'external_transaction_id', 'order__order_number', 'customer_phone']
    readonly_fields = [
        'id', 'order', 'transaction_id', 'external_transaction_id', 'provider',
        'amount', 'status', 'provider_data', 'webhook_data', 'initiated_at',
        'completed_at', 'failed_at', 'cancelled_at', 'verified_at',
        'created_at', 'updated_at',
    ]

    def has_delete_permission(self, request, obj=None):
        return False
