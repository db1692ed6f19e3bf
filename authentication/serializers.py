from django.contrib.auth import get_user_model
from rest_framework import serializers

User = get_user_model()


class PrincipalSerializer(serializers.ModelSerializer):
    """Identity of the authenticated principal, with its active role names."""

    roles = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ["id", "email", "username", "first_name", "last_name", "roles"]
        read_only_fields = fields

    def get_roles(self, obj):
        return list(obj.roles.filter(is_active=True).values_list("name", flat=True))
