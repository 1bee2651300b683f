"""
URL configuration for HOS Compliance API endpoints.

Provides URL routing for route compliance analysis, trip simulation and
duty status transitions.
"""

from django.urls import path

from .views import DutyStatusViewSet, RouteComplianceViewSet, TripSimulationViewSet

app_name = "hos_compliance"

urlpatterns = [
    # Route compliance analysis
    path('analyze/',
         RouteComplianceViewSet.as_view({'post': 'analyze'}),
         name='hos-analyze'),
    path('analyze/batch/',
         RouteComplianceViewSet.as_view({'post': 'analyze_batch'}),
         name='hos-analyze-batch'),

    # Rest requirement simulation
    path('simulate/',
         TripSimulationViewSet.as_view({'post': 'simulate'}),
         name='hos-simulate'),
    path('policy/',
         TripSimulationViewSet.as_view({'get': 'policy'}),
         name='hos-policy'),

    # Duty Status endpoints
    path('duty-status/transition/',
         DutyStatusViewSet.as_view({'post': 'transition'}),
         name='hos-duty-status-transition'),
]

# API Documentation - Available Endpoints:
"""
GET Endpoints:
- /api/hos/policy/ - Regulatory thresholds in force

POST Endpoints:
- /api/hos/analyze/ - Compliance and risk report for one route
- /api/hos/analyze/batch/ - Concurrent reports for independent routes
- /api/hos/simulate/ - Rest requirements along a route
- /api/hos/duty-status/transition/ - Apply a duty status change
"""
