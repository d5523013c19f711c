"""
URL configuration for delivery app.
"""
from django.urls import path
from delivery import views

urlpatterns = [
    path('payments/confirmed/', views.PaymentConfirmedWebhookView.as_view(), name='payment-confirmed'),
    path('orders/<int:order_id>/trigger/', views.TriggerDeliveryView.as_view(), name='trigger-delivery'),
    path('sweeps/<str:name>/', views.SweepView.as_view(), name='run-sweep'),
    path('logs/', views.DeliveryLogListView.as_view(), name='delivery-logs'),
    path('logs/stats/', views.DeliveryStatsView.as_view(), name='delivery-stats'),
    path('logs/<int:log_id>/resolve/', views.ResolveDeliveryLogView.as_view(), name='resolve-delivery-log'),
    path('overview/', views.DeliveryOverviewView.as_view(), name='delivery-overview'),
]
