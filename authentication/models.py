"""
Authentication models for the shop back-office.

Login mechanics are delegated to JWT tokens; these models only carry what the
order/payment core needs from a principal: its identity, its roles (for the
admin gate) and an audit trail of the actions it performed.
"""

from django.conf import settings
from django.contrib.auth.models import AbstractUser, UserManager
from django.core.validators import RegexValidator
from django.db import models


class Role(models.Model):
    """
    Authorization role attached to one or more users (ADMIN, SUPPORT_AGENT, ...).
    """

    name = models.CharField(
        max_length=32,
        unique=True,
        help_text="Unique machine-friendly role identifier, e.g. ADMIN, SUPPORT_AGENT.",
        validators=[
            RegexValidator(
                regex=r"^[A-Z_]{3,32}$",
                message="Role names must be uppercase letters and underscores only (3-32 chars).",
            )
        ],
    )
    display_name = models.CharField(max_length=64)
    is_active = models.BooleanField(
        default=True,
        help_text="Inactive roles remain for audit history but no longer grant access.",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("name",)

    def __str__(self) -> str:
        return self.display_name or self.name


class User(AbstractUser):
    """
    Back-office user. Email is the login identifier.
    """

    email = models.EmailField(unique=True)
    phone_number = models.CharField(max_length=20, blank=True)
    roles = models.ManyToManyField(
        Role,
        through="UserRole",
        through_fields=("user", "role"),
        related_name="users",
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = ["username"]

    objects = UserManager()

    class Meta:
        ordering = ("-created_at",)

    def __str__(self) -> str:
        return self.email

    def has_role(self, *role_names: str) -> bool:
        """
        Check whether the user owns any of the supplied role names.
        Superusers always return True.
        """
        if self.is_superuser:
            return True
        return self.roles.filter(name__in=role_names, is_active=True).exists()


class UserRole(models.Model):
    """Through table recording who granted which role and when."""

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="role_memberships")
    role = models.ForeignKey(Role, on_delete=models.CASCADE, related_name="role_memberships")
    assigned_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="roles_granted",
    )
    assigned_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ("user", "role")
        ordering = ("-assigned_at",)

    def __str__(self) -> str:
        return f"{self.user.email} -> {self.role.name}"


class AuditLog(models.Model):
    """
    Persistent trail of back-office actions (status changes, payment
    validations, webhook receptions).

    Audit rows are never deleted.
    """

    class Status(models.TextChoices):
        SUCCESS = "SUCCESS", "Success"
        FAILURE = "FAILURE", "Failure"
        BLOCKED = "BLOCKED", "Blocked"

    user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
    )
    action = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Action type: UPDATE_STATUS, VALIDATE_PAYMENT, WEBHOOK, ...",
    )
    resource_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Resource type: ORDER, PAYMENT, ...",
    )
    resource_id = models.CharField(max_length=100, null=True, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    request_path = models.CharField(max_length=500, blank=True)
    request_method = models.CharField(max_length=10, blank=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.SUCCESS,
        db_index=True,
    )
    metadata = models.JSONField(default=dict, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-timestamp"]
        indexes = [
            models.Index(fields=["user", "timestamp"]),
            models.Index(fields=["resource_type", "resource_id"]),
        ]
        verbose_name = "Audit Log"
        verbose_name_plural = "Audit Logs"

    def __str__(self):
        user_str = self.user.email if self.user else "Anonymous"
        return f"{self.action} on {self.resource_type} by {user_str} at {self.timestamp}"
