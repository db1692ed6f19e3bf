"""
Order views for the shop back-office API.

This module provides:
- ``OrderViewSet``: the admin order surface (list/filter, detail, status
  transitions, order-level payment validation, statistics)
- ``PublicOrderCreateView``: anonymous order placement from the storefront

Security Features:
- Admin endpoints require a bearer token whose user holds the ADMIN role
- Public order placement is rate limited per IP
- Every admin mutation is written to the audit log, failures included
"""

import logging

from django.utils.decorators import method_decorator
from django_ratelimit.decorators import ratelimit
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.audit import log_action
from authentication.models import AuditLog
from authentication.permissions import IsAdminRole
from payments.exceptions import AllProvidersFailed
from payments.factory import create_order_service, create_payment_orchestrator
from payments.serializers import PaymentSerializer, PaymentValidationSerializer
from shop_backoffice.exceptions import BackOfficeError

from .filters import OrderFilter
from .models import Order
from .serializers import (
    OrderCreateSerializer,
    OrderListSerializer,
    OrderSerializer,
    OrderStatusUpdateSerializer,
)

logger = logging.getLogger(__name__)

UUID_PATTERN = r'[0-9a-fA-F-]{36}'


class OrderViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Admin order management.

    Security Features:
    - ADMIN role required for every action
    - Status changes follow the order state machine (409 otherwise)
    - Audit logging for status changes and payment validations
    """

    queryset = Order.objects.prefetch_related('items', 'payments')
    permission_classes = [IsAdminRole]
    filterset_class = OrderFilter
    lookup_value_regex = UUID_PATTERN

    def get_serializer_class(self):
        if self.action == 'list':
            return OrderListSerializer
        return OrderSerializer

    @action(detail=True, methods=['patch'], url_path='status')
    @method_decorator(ratelimit(key='user', rate='30/m', method='PATCH'))
    def update_status(self, request, pk=None):
        """
        Move the order to a new status.

        Body: ``status`` plus optional ``notes``, ``estimated_delivery`` and
        ``cancellation_reason``.
        """
        order = self.get_object()
        serializer = OrderStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        previous_status = order.status

        try:
            order = create_order_service().update_status(
                order,
                data['status'],
                notes=data.get('notes'),
                estimated_delivery=data.get('estimated_delivery'),
                cancellation_reason=data.get('cancellation_reason'),
            )
        except BackOfficeError as e:
            log_action(
                request, 'UPDATE_STATUS', 'ORDER', order.id, AuditLog.Status.FAILURE,
                {'requested_status': data['status'], 'previous_status': previous_status,
                 'error': str(e.detail)},
            )
            raise

        log_action(
            request, 'UPDATE_STATUS', 'ORDER', order.id, AuditLog.Status.SUCCESS,
            {'new_status': order.status, 'previous_status': previous_status},
        )
        order = self.get_queryset().get(pk=order.pk)
        return Response({
            'detail': 'Statut de la commande mis à jour avec succès',
            'order': OrderSerializer(order).data,
        })

    @action(detail=True, methods=['patch'], url_path='validate-payment')
    def validate_payment(self, request, pk=None):
        """Approve or reject the order's payment awaiting a decision."""
        order = self.get_object()
        serializer = PaymentValidationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        approved = serializer.validated_data['approved']

        try:
            payment = create_payment_orchestrator().validate_order_payment(
                order,
                approved,
                notes=serializer.validated_data['notes'],
                principal=request.user,
            )
        except BackOfficeError as e:
            log_action(
                request, 'VALIDATE_PAYMENT', 'ORDER', order.id, AuditLog.Status.FAILURE,
                {'approved': approved, 'error': str(e.detail)},
            )
            raise

        log_action(
            request, 'VALIDATE_PAYMENT', 'PAYMENT', payment.id, AuditLog.Status.SUCCESS,
            {'approved': approved, 'order_number': order.order_number},
        )
        order = self.get_queryset().get(pk=order.pk)
        return Response({
            'detail': 'Paiement validé' if approved else 'Paiement rejeté',
            'payment': PaymentSerializer(payment).data,
            'order': OrderSerializer(order).data,
        })

    @action(detail=False, methods=['get'])
    def stats(self, request):
        return Response(create_order_service().stats())


class PublicOrderCreateView(APIView):
    """
    Storefront order placement.

    Security Features:
    - Anonymous, rate limited: 10 orders per minute per IP
    - Prices, totals and stock come from the database, never the client
    """

    permission_classes = [AllowAny]
    authentication_classes = []

    @method_decorator(ratelimit(key='ip', rate='10/m', method='POST'))
    def post(self, request):
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        orchestrator = create_payment_orchestrator()
        order, payment = orchestrator.order_service.create_order(
            items=data['items'],
            customer=data['customer'],
            delivery=data['delivery'],
            payment_method=data['payment_method'],
            delivery_only=data['delivery_only'],
            notes=data['notes'],
        )

        body = {
            'message': 'Commande créée avec succès',
            'order': {
                'id': str(order.id),
                'order_number': order.order_number,
                'status': order.status,
                'payment_status': order.payment_status,
                'subtotal': str(order.subtotal),
                'shipping_cost': str(order.shipping_cost),
                'total_amount': str(order.total_amount),
                'remaining_balance': str(order.remaining_balance),
            },
            'payment': {
                'transaction_id': payment.transaction_id,
                'amount': str(payment.amount),
                'kind': payment.kind,
                'status': payment.status,
            },
        }

        if data['initiate_payment']:
            try:
                payment, result = orchestrator.initiate_payment(order, payment=payment)
            except AllProvidersFailed as e:
                logger.warning(
                    "Order %s created without payment initiation: %s", order.order_number, e.errors,
                )
                body['payment']['error'] = str(e.detail)
            else:
                body['payment'].update({
                    'provider': payment.provider,
                    'external_transaction_id': payment.external_transaction_id,
                    'payment_url': result.payment_url,
                })

        return Response(body, status=status.HTTP_201_CREATED)
