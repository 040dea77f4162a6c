from django.urls import path
from . import views
app_name = "alfalah"
urlpatterns = [
    path("pay", views.pay_view, name="pay"),
    path("create-payment", views.create_payment_view, name="create_payment"),
    path("listener", views.listener_view, name="listener"),
    path("return", views.return_view, name="return"),  # ALFA_RETURN_URL points here
    path("check-payment-status", views.check_payment_status_view, name="check_payment_status"),
    path("order-status/<str:order_id>", views.order_status_view, name="order_status"),
    path("test", views.test_view, name="test"),
    path("cache/<str:transaction_id>", views.cache_view, name="cache"),
]
