"""
URL configuration for the PropLedger back office.
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    # JSON API
    path('api/', include('apps.finance.urls')),
    path('api/', include('apps.property.urls')),
]
