"""Root URL configuration for linkgraph.

The internal links API is mounted under ``/api/internal-links/`` and the
Django admin doubles as the login screen for staff users.
"""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/internal-links/', include('internal_links.urls')),
]
