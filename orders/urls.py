from django.urls import path

from . import views

urlpatterns = [
    path("public/orders/", views.PublicOrderCreateView.as_view(), name="public-order-create"),
]
