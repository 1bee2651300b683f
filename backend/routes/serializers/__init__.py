"""
Routes serializers package.

This package contains the serializers for the routes app.
"""

from .route_serializer import (
    RoutePointSerializer,
    RouteProfileRequestSerializer,
    build_route_profile,
)

__all__ = [
    "RoutePointSerializer",
    "RouteProfileRequestSerializer",
    "build_route_profile",
]
