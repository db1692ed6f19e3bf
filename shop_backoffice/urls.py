"""
URL configuration for the shop back-office.

This module defines URL patterns for:
- Admin order and payment ViewSet routes
- Public order placement and payment endpoints
- JWT token endpoints
- Django admin interface
"""

from django.contrib import admin
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from orders.views import OrderViewSet
from payments.views import PaymentViewSet

router = DefaultRouter()
router.register(r'admin/orders', OrderViewSet, basename='admin-order')
router.register(r'admin/payments', PaymentViewSet, basename='admin-payment')

urlpatterns = [
    # Admin interface
    path('admin/', admin.site.urls),

    # API routes
    path('api/', include(router.urls)),
    path('api/', include('orders.urls')),
    path('api/', include('payments.urls')),
    path('api/', include('authentication.urls')),
]
