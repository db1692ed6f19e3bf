"""
Payment views for the shop back-office API.

Public endpoints (storefront and provider callbacks):
- ``initiate_payment``: start a mobile-money collection with provider fallback
- ``verify_payment``: poll the provider for a transaction's status
- ``submit_manual_payment``: record an out-of-band proof for admin review
- ``payment_webhook``: provider status callbacks

Admin endpoints live on ``PaymentViewSet`` (list, detail, validate, retry).

Security Features:
- Public endpoints are anonymous and rate limited per IP
- Admin endpoints require the ADMIN role and are audit logged
"""

from django_filters.rest_framework import DjangoFilterBackend
from django_ratelimit.decorators import ratelimit
from django.utils.decorators import method_decorator
from rest_framework import status, viewsets
from rest_framework.decorators import (
    action,
    api_view,
    authentication_classes,
    permission_classes,
)
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from authentication.audit import log_action
from authentication.models import AuditLog
from authentication.permissions import IsAdminRole
from orders.services import get_order
from shop_backoffice.exceptions import BackOfficeError

from .factory import create_payment_orchestrator
from .models import Payment
from .serializers import (
    ManualPaymentSerializer,
    PaymentInitiateSerializer,
    PaymentSerializer,
    PaymentValidationSerializer,
    PaymentVerifySerializer,
)


@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
@ratelimit(key="ip", rate="10/m", method="POST")
def initiate_payment(request):
    serializer = PaymentInitiateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    order = get_order(data["order_id"])

    # Reuse the order's not-yet-initiated payment row when no amount override is given
    pending_row = None
    if data.get("amount") is None:
        pending_row = order.payments.filter(
            provider__isnull=True, status=Payment.Status.PENDING,
        ).first()

    payment, result = create_payment_orchestrator().initiate_payment(
        order,
        amount=data.get("amount"),
        phone_number=data.get("phone_number"),
        payment_method=data["payment_method"],
        provider_hint=data.get("provider") or None,
        payment=pending_row,
        kind=data.get("kind"),
    )
    return Response(
        {
            "success": True,
            "provider": payment.provider,
            "transaction_id": payment.transaction_id,
            "external_transaction_id": payment.external_transaction_id,
            "payment_url": result.payment_url,
            "payment": PaymentSerializer(payment).data,
        },
        status=status.HTTP_201_CREATED,
    )


@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
@ratelimit(key="ip", rate="30/m", method="POST")
def verify_payment(request):
    serializer = PaymentVerifySerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    payment, result = create_payment_orchestrator().verify_payment(
        serializer.validated_data["transaction_id"],
        serializer.validated_data["provider"],
    )
    return Response(
        {
            "transaction_id": payment.transaction_id,
            "status": payment.status,
            "provider_status": result.native_status,
            "order_status": payment.order.status,
            "order_payment_status": payment.order.payment_status,
        }
    )


@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
@ratelimit(key="ip", rate="5/m", method="POST")
def submit_manual_payment(request):
    serializer = ManualPaymentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    proof = dict(serializer.validated_data)
    order = get_order(proof.pop("order_id"))

    payment = create_payment_orchestrator().validate_manual_payment(order, proof)
    return Response(
        {
            "success": True,
            "payment_id": str(payment.id),
            "transaction_id": payment.transaction_id,
            "message": "Paiement soumis pour validation",
        },
        status=status.HTTP_201_CREATED,
    )


@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
@ratelimit(key="ip", rate="120/m", method="POST")
def payment_webhook(request, provider):
    try:
        payment = create_payment_orchestrator().handle_webhook(provider, request.data)
    except BackOfficeError as e:
        log_action(
            request, "WEBHOOK", "PAYMENT", None, AuditLog.Status.FAILURE,
            {"provider": provider, "error": str(e.detail)},
        )
        raise

    log_action(
        request, "WEBHOOK", "PAYMENT", payment.pk, AuditLog.Status.SUCCESS,
        {"provider": provider, "status": payment.status},
    )
    return Response({"received": True, "status": payment.status})


class PaymentViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Admin payment management.

    Security Features:
    - ADMIN role required for every action
    - Validation decisions record the deciding admin in the payment and
      in the audit log
    """

    queryset = Payment.objects.select_related("order")
    serializer_class = PaymentSerializer
    permission_classes = [IsAdminRole]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ["status", "provider", "payment_method", "kind", "order"]
    lookup_value_regex = r"[0-9a-fA-F-]{36}"

    @action(detail=True, methods=["patch"])
    @method_decorator(ratelimit(key="user", rate="30/m", method="PATCH"))
    def validate(self, request, pk=None):
        """Approve or reject a payment; the order follows the decision."""
        payment = self.get_object()
        serializer = PaymentValidationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        approved = serializer.validated_data["approved"]

        try:
            payment = create_payment_orchestrator().admin_validate_payment(
                payment.pk,
                approved,
                notes=serializer.validated_data["notes"],
                principal=request.user,
            )
        except BackOfficeError as e:
            log_action(
                request, "VALIDATE_PAYMENT", "PAYMENT", payment.pk, AuditLog.Status.FAILURE,
                {"approved": approved, "error": str(e.detail)},
            )
            raise

        log_action(
            request, "VALIDATE_PAYMENT", "PAYMENT", payment.pk, AuditLog.Status.SUCCESS,
            {"approved": approved, "order_number": payment.order.order_number},
        )
        return Response({
            "detail": "Paiement validé" if approved else "Paiement rejeté",
            "payment": PaymentSerializer(payment).data,
        })

    @action(detail=True, methods=["post"])
    @method_decorator(ratelimit(key="user", rate="10/m", method="POST"))
    def retry(self, request, pk=None):
        """Start a new provider attempt for a failed payment."""
        payment = self.get_object()
        try:
            new_payment, result = create_payment_orchestrator().retry_payment(payment.pk)
        except BackOfficeError as e:
            log_action(
                request, "RETRY_PAYMENT", "PAYMENT", payment.pk, AuditLog.Status.FAILURE,
                {"error": str(e.detail)},
            )
            raise

        log_action(
            request, "RETRY_PAYMENT", "PAYMENT", payment.pk, AuditLog.Status.SUCCESS,
            {"new_payment": str(new_payment.pk), "provider": new_payment.provider},
        )
        return Response(
            {
                "payment": PaymentSerializer(new_payment).data,
                "payment_url": result.payment_url,
            },
            status=status.HTTP_201_CREATED,
        )
