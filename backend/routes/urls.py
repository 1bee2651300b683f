"""
URL configuration for routes app.

Defines URL patterns for route profile lookups, API info and health
checks.
"""

from django.urls import path
from . import views

app_name = "routes"

urlpatterns = [
    # Route time/distance profile from the routing provider
    path("profile/", views.RouteProfileView.as_view(), name="route-profile"),
    # API info and health check
    path("", views.api_info, name="api-info"),
    path("health/", views.health_check, name="health-check"),
]
