import django_filters
from django.db.models import Q

from .models import Order


class OrderFilter(django_filters.FilterSet):
    """
    Admin order list filters: status, payment status, creation date range and
    a free-text search over the order number and customer identity.
    """

    date_from = django_filters.DateFilter(field_name='created_at', lookup_expr='date__gte')
    date_to = django_filters.DateFilter(field_name='created_at', lookup_expr='date__lte')
    search = django_filters.CharFilter(method='filter_search')

    class Meta:
        model = Order
        fields = ['status', 'payment_status', 'payment_method', 'delivery_option']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(order_number__icontains=value)
            | Q(customer_first_name__icontains=value)
            | Q(customer_last_name__icontains=value)
            | Q(customer_email__icontains=value)
            | Q(customer_phone__icontains=value)
        )
