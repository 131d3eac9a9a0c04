"""URL configuration for the internal links app.

The ``app_name`` allows namespacing from the project URL configuration and
the route names are what ``THROTTLED_ROUTES`` refers to.
"""

from django.urls import path

from . import views

app_name = 'internal_links'

urlpatterns = [
    path('scan/', views.scan, name='scan'),
    path('suggestions/', views.suggestions, name='suggestions'),
    path('suggestions/<int:pk>/status/', views.suggestion_status, name='suggestion_status'),
    path('apply/', views.apply, name='apply'),
    path('unlink/', views.unlink, name='unlink'),
    path('orphans/', views.orphans, name='orphans'),
    path('orphans/scan/', views.orphan_scan, name='orphan_scan'),
    path('stats/', views.stats, name='stats'),
]
