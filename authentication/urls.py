"""
Authentication app URL declarations.

Login itself is the JWT token pair endpoint; the back-office only needs the
bearer token to derive the principal used for admin gating and audit.
"""

from django.urls import path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from . import views

urlpatterns = [
    path("auth/token/", TokenObtainPairView.as_view(), name="token-obtain-pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token-refresh"),
    path("auth/me/", views.me, name="auth-me"),
]
