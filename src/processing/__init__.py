"""Deal metrics processing modules."""
from .normalizer import DealNormalizer, InvalidDealListError
from .metrics import DashboardMetricsEngine, DashboardMetrics, compute_dashboard_metrics

__all__ = [
    "DealNormalizer",
    "InvalidDealListError",
    "DashboardMetricsEngine",
    "DashboardMetrics",
    "compute_dashboard_metrics",
]
