from rest_framework.permissions import BasePermission


class IsAdminRole(BasePermission):
    """
    Grants access to authenticated users holding the ADMIN role
    (superusers always pass).
    """

    message = "Only administrators can perform this action."
    role_names = ("ADMIN",)

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        return user.has_role(*self.role_names)
