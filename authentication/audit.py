"""
Audit trail helpers shared by the order and payment views.
"""

import logging

from .models import AuditLog

logger = logging.getLogger(__name__)


def get_client_ip(request):
    x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
    if x_forwarded_for:
        return x_forwarded_for.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR")


def log_action(request, action, resource_type, resource_id, status, metadata=None):
    """
    Create an ``AuditLog`` row for the current request.

    A failure to write the audit row is logged and never fails the request.
    """
    user = getattr(request, "user", None)
    try:
        AuditLog.objects.create(
            user=user if user is not None and user.is_authenticated else None,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            ip_address=get_client_ip(request),
            user_agent=request.META.get("HTTP_USER_AGENT", ""),
            request_path=request.path,
            request_method=request.method,
            status=status,
            metadata=metadata or {},
        )
    except Exception:
        logger.exception("Could not write audit log for %s %s", action, resource_type)
