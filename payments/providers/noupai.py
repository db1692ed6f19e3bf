"""
Noupai mobile-money adapter (primary provider).
"""

from ..exceptions import ProviderError
from ..models import Payment
from .base import (
    InitiationResult,
    PaymentProviderAdapter,
    PaymentRequest,
    VerificationResult,
    WebhookEvent,
    decimal_or_none,
    json_amount,
)

OPERATORS = {
    Payment.Method.MTN_MOMO: 'MTN_MOMO',
    Payment.Method.ORANGE_MONEY: 'ORANGE_MONEY',
    'mtn': 'MTN_MOMO',
    'orange': 'ORANGE_MONEY',
    'moov': 'MOOV_MONEY',
}


class NoupaiAdapter(PaymentProviderAdapter):
    name = 'noupai'
    STATUS_MAP = {
        'pending': Payment.Status.PENDING,
        'processing': Payment.Status.PENDING,
        'successful': Payment.Status.COMPLETED,
        'completed': Payment.Status.COMPLETED,
        'failed': Payment.Status.FAILED,
        'cancelled': Payment.Status.FAILED,
    }

    def auth_headers(self):
        return {'Authorization': f'Bearer {self.api_key}'}

    @staticmethod
    def operator_for(payment_method: str) -> str:
        return OPERATORS.get(payment_method, 'MTN_MOMO')

    def initiate(self, request: PaymentRequest) -> InitiationResult:
        payload = {
            'amount': json_amount(request.amount),
            'currency': request.currency,
            'phone': request.phone_number,
            'operator': self.operator_for(request.payment_method),
            'external_id': request.reference,
            'description': request.description or f"Order #{request.order_number}",
            'return_url': f"{self.return_base_url}/payment/success",
            'cancel_url': f"{self.return_base_url}/payment/cancel",
            'webhook_url': self.webhook_url,
            'customer': {
                'name': request.customer_name or 'Customer',
                'email': request.customer_email or '',
                'phone': request.phone_number,
            },
        }
        data = self._request('POST', '/v1/payments', self.initiate_timeout, json=payload)

        if data.get('status') != 'success' or not data.get('transaction_id'):
            raise ProviderError(
                data.get('message') or 'Noupai payment initialization failed',
                provider=self.name,
            )
        return InitiationResult(
            transaction_id=str(data['transaction_id']),
            payment_url=data.get('payment_url'),
            raw=data,
        )

    def verify(self, transaction_id: str) -> VerificationResult:
        data = self._request('GET', f'/v1/payments/{transaction_id}', self.verify_timeout)
        native = data.get('status')
        return VerificationResult(
            native_status=native,
            status=self.map_status(native),
            amount=decimal_or_none(data.get('amount')),
            currency=data.get('currency'),
            raw=data,
        )

    def decode_webhook(self, payload) -> WebhookEvent:
        native = payload.get('status')
        transaction_id = payload.get('transaction_id')
        return WebhookEvent(
            transaction_id=str(transaction_id) if transaction_id else None,
            native_status=native,
            status=self.map_status(native),
            raw=dict(payload),
        )
