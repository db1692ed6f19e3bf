"""
Django admin configuration for authentication models.
"""

from django.contrib import admin
from django.contrib.auth import get_user_model

from .models import AuditLog, Role, UserRole

User = get_user_model()


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    """Admin interface for User model."""
    list_display = ['email', 'username', 'is_active', 'is_superuser', 'created_at']
    list_filter = ['is_active', 'is_superuser']
    search_fields = ['email', 'username', 'first_name', 'last_name']
    readonly_fields = ['created_at', 'last_login', 'date_joined']


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ['name', 'display_name', 'is_active', 'created_at']
    list_filter = ['is_active']
    search_fields = ['name', 'display_name']


@admin.register(UserRole)
class UserRoleAdmin(admin.ModelAdmin):
    list_display = ['user', 'role', 'assigned_by', 'assigned_at']
    list_filter = ['role', 'assigned_at']
    search_fields = ['user__email', 'role__name']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    """Read-only admin for the audit trail."""
    list_display = ['action', 'resource_type', 'resource_id', 'user', 'status', 'timestamp']
    list_filter = ['action', 'resource_type', 'status', 'timestamp']
    search_fields = ['user__email', 'ip_address', 'action', 'resource_id']
    readonly_fields = ['timestamp', 'user', 'action', 'resource_type', 'resource_id',
                       'ip_address', 'user_agent', 'request_path', 'request_method',
                       'status', 'metadata']
    date_hierarchy = 'timestamp'

    def has_add_permission(self, request):
        """Audit rows are only written by the application."""
        return False
