from django.utils.translation import gettext_lazy as _
from rest_framework import status

from shop_backoffice.exceptions import BackOfficeError, ConflictError, NotFoundError


class PaymentNotFound(NotFoundError):
    default_detail = _("Paiement non trouvé")
    default_code = "payment_not_found"


class PaymentNotRetryable(ConflictError):
    default_detail = _("Ce paiement ne peut pas être relancé")
    default_code = "payment_not_retryable"


class ProviderError(BackOfficeError):
    """
    A provider call failed: network error, timeout, non-2xx response or an
    unsuccessful body. Carries the provider name for fallback logging.
    """
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = _("Le fournisseur de paiement a renvoyé une erreur")
    default_code = "provider_error"

    def __init__(self, detail=None, code=None, provider=None):
        super().__init__(detail, code)
        self.provider = provider


class AllProvidersFailed(BackOfficeError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = _("Aucun fournisseur de paiement n'est disponible")
    default_code = "all_providers_failed"

    def __init__(self, detail=None, code=None, errors=None):
        super().__init__(detail, code)
        self.errors = errors or {}


class UnsupportedProvider(BackOfficeError):
    default_detail = _("Fournisseur de paiement non supporté")
    default_code = "unsupported_provider"


class InvalidWebhook(BackOfficeError):
    default_detail = _("Notification de paiement invalide")
    default_code = "invalid_webhook"
