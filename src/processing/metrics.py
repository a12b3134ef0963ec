"""
Dashboard Metrics Engine

Runs the four metrics passes over a single normalized deal frame:
monthly won revenue, current-month performance, pipeline composition and
forecast. Stateless: every call re-derives everything from the deal list.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd

from config.settings import TARGET_PER_FUNNEL
from .normalizer import DealNormalizer
from .monthly_funnel import (
    MonthlyFunnelSeries,
    aggregate_won_by_month_and_funnel,
    closed_funnels,
    open_funnels,
    merge_funnels,
    resolve_date_field,
)
from .performance import FunnelPerformance, PerformanceCalculator
from .pipeline import FunnelPipeline, compose_pipeline_by_funnel
from .forecast import FunnelForecast, ForecastBuilder

logger = logging.getLogger(__name__)


def _json_value(value: Any) -> Any:
    if isinstance(value, pd.Timestamp):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _json_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_json_value(v) for v in value]
    return value


@dataclass
class DashboardMetrics:
    """Container for all derived dashboard views."""
    monthly: MonthlyFunnelSeries
    performance: List[FunnelPerformance]
    pipelines: List[FunnelPipeline]
    forecasts: List[FunnelForecast]
    funnels: List[str]

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serialisable representation (timestamps as ISO strings)."""
        return {
            "funnels": list(self.funnels),
            "monthly": {
                "data": self.monthly.records(),
                "funnels": list(self.monthly.funnels),
                "all_funnels": list(self.monthly.all_funnels),
            },
            "performance": [asdict(p) for p in self.performance],
            "pipelines": [asdict(p) for p in self.pipelines],
            "forecasts": _json_value([asdict(f) for f in self.forecasts]),
        }


class DashboardMetricsEngine:
    """
    Derives the revenue dashboard views from a raw deal list.

    The reference instant is always passed in, so results are deterministic.
    """

    def __init__(
        self,
        target_per_funnel: float = TARGET_PER_FUNNEL,
        targets: Optional[Dict[str, float]] = None,
        date_field: str = "close_date"
    ):
        """
        Initialize the engine.

        Args:
            target_per_funnel: Monthly target shared by every funnel
            targets: Optional per-funnel target overrides
            date_field: Date used to bucket won deals in the monthly series

        Raises:
            ValueError: On a non-positive target or unknown date field
        """
        self.performance_calculator = PerformanceCalculator(target_per_funnel, targets=targets)
        self.date_field = resolve_date_field(date_field)
        self.normalizer = DealNormalizer()

    def compute(self, deals: Any, now: datetime) -> DashboardMetrics:
        """
        Compute every dashboard view.

        Args:
            deals: Raw deal list (sequence of mappings)
            now: Reference instant

        Returns:
            DashboardMetrics

        Raises:
            InvalidDealListError: If deals is not a sequence of mappings
        """
        df = self.normalizer.normalize(deals)

        opened = open_funnels(df)
        funnels = merge_funnels(closed_funnels(df), opened)
        logger.info(f"Computing dashboard metrics for {len(df)} deal(s) across {len(funnels)} funnel(s)")

        monthly = aggregate_won_by_month_and_funnel(df, date_field=self.date_field, extra_funnels=opened)
        performance = self.performance_calculator.calculate(df, now, funnels=funnels)
        pipelines = compose_pipeline_by_funnel(df, funnels=funnels)
        forecasts = ForecastBuilder(now).build(df, funnels=funnels)

        return DashboardMetrics(
            monthly=monthly,
            performance=performance,
            pipelines=pipelines,
            forecasts=forecasts,
            funnels=funnels
        )


def compute_dashboard_metrics(
    deals: Any,
    now: datetime,
    target_per_funnel: float = TARGET_PER_FUNNEL,
    targets: Optional[Dict[str, float]] = None,
    date_field: str = "close_date"
) -> DashboardMetrics:
    """
    Convenience function to compute all dashboard views.

    Args:
        deals: Raw deal list
        now: Reference instant
        target_per_funnel: Monthly target per funnel
        targets: Optional per-funnel target overrides
        date_field: Date used to bucket won deals

    Returns:
        DashboardMetrics
    """
    engine = DashboardMetricsEngine(target_per_funnel, targets=targets, date_field=date_field)
    return engine.compute(deals, now)
