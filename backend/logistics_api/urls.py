"""
URL configuration for logistics_api project.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/4.2/topics/http/urls/
"""

from django.urls import path, include
from django.http import JsonResponse


def api_root(request):
    """API root endpoint with available endpoints."""
    return JsonResponse({
        'message': 'Route Compliance API',
        'version': '1.0',
        'endpoints': {
            'routes': '/api/routes/',
            'hos_compliance': '/api/hos/',
            'risk_analysis': '/api/risk/',
        },
        'documentation': {
            'hos_compliance': {
                'description': 'Driver rest compliance along planned routes',
                'endpoints': {
                    'analyze': 'POST /api/hos/analyze/ - Compliance and risk report for a route',
                    'analyze_batch': 'POST /api/hos/analyze/batch/ - Reports for several routes',
                    'simulate': 'POST /api/hos/simulate/ - Mandatory rests along a route',
                    'policy': 'GET /api/hos/policy/ - Regulatory thresholds',
                    'transition': 'POST /api/hos/duty-status/transition/ - Apply a duty status change',
                }
            },
            'risk_analysis': {
                'description': 'Explainable hazard risk scoring',
                'endpoints': {
                    'weather': 'POST /api/risk/weather/ - Weather risk for one observation',
                    'route': 'POST /api/risk/route/ - Combined risk for route segments',
                }
            },
            'routes': {
                'description': 'Route profiles and service health',
                'endpoints': {
                    'profile': 'POST /api/routes/profile/ - Route time/distance profile',
                    'health': 'GET /api/routes/health/ - Health check',
                }
            },
        }
    })


urlpatterns = [
    # API root
    path("api/", api_root, name='api-root'),

    # Routes API
    path("api/routes/", include("routes.urls")),

    # HOS Compliance API
    path("api/hos/", include("hos_compliance.urls")),

    # Risk Analysis API
    path("api/risk/", include("risk_analysis.urls")),
]
