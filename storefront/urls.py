"""
URL configuration for storefront project.
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/delivery/', include('delivery.urls')),
]
