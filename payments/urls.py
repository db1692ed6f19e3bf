from django.urls import path

from . import views

urlpatterns = [
    path("payments/initiate/", views.initiate_payment, name="payment-initiate"),
    path("payments/verify/", views.verify_payment, name="payment-verify"),
    path("payments/manual/", views.submit_manual_payment, name="payment-manual"),
    path("payments/webhook/<str:provider>/", views.payment_webhook, name="payment-webhook"),
]
