from django.utils.translation import gettext_lazy as _
from rest_framework import status

from shop_backoffice.exceptions import BackOfficeError, ConflictError, NotFoundError


class OrderNotFound(NotFoundError):
    default_detail = _("Commande non trouvée")
    default_code = "order_not_found"


class ProductNotFound(BackOfficeError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = _("Produit non trouvé")
    default_code = "product_not_found"


class OutOfStock(BackOfficeError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = _("Produit en rupture de stock")
    default_code = "out_of_stock"


class InvalidTransition(ConflictError):
    default_detail = _("Transition de statut non autorisée")
    default_code = "invalid_transition"


class UnsupportedStatus(BackOfficeError):
    default_detail = _("Statut inconnu")
    default_code = "unsupported_status"
