"""
Shared error types for the back-office API.

Domain errors derive from DRF's ``APIException`` so that raising one anywhere
in the order/payment core surfaces a human-readable ``detail`` with the right
HTTP status. Internal context stays in the server logs.
"""

import logging

from django.utils.translation import gettext_lazy as _
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class BackOfficeError(APIException):
    """Base class for errors raised by the order/payment core."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = _("The request could not be processed.")
    default_code = "backoffice_error"


class NotFoundError(BackOfficeError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = _("Resource not found.")
    default_code = "not_found"


class ConflictError(BackOfficeError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = _("The resource is not in a state that allows this operation.")
    default_code = "conflict"


def api_exception_handler(exc, context):
    """
    DRF exception handler adding a machine-readable ``code`` to error bodies.

    Server errors are logged with their traceback; client errors are logged
    at INFO so that failed admin actions stay traceable.
    """
    response = exception_handler(exc, context)
    view = context.get("view")
    view_name = type(view).__name__ if view is not None else "unknown"

    if response is None:
        logger.exception("Unhandled error in %s", view_name)
        return None

    if isinstance(exc, APIException):
        if isinstance(response.data, dict) and "code" not in response.data:
            codes = exc.get_codes()
            response.data["code"] = codes if isinstance(codes, str) else "invalid"

    if response.status_code >= 500:
        logger.error("%s failed with %s: %s", view_name, response.status_code, exc)
    else:
        logger.info("%s rejected request (%s): %s", view_name, response.status_code, exc)
    return response
