"""
URL configuration for Risk Analysis API endpoints.
"""

from django.urls import path

from .views import RiskAssessmentViewSet

app_name = "risk_analysis"

urlpatterns = [
    path('weather/',
         RiskAssessmentViewSet.as_view({'post': 'weather'}),
         name='risk-weather'),
    path('route/',
         RiskAssessmentViewSet.as_view({'post': 'route'}),
         name='risk-route'),
]
