"""
Risk Analysis Services Package.

Services:
- RiskAggregator: Explainable hazard scoring for points, segments and routes
"""

from .risk_aggregator import RiskAggregator, RiskFactorWeights, risk_level_for

__all__ = [
    "RiskAggregator",
    "RiskFactorWeights",
    "risk_level_for",
]
