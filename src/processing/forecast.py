"""
Forecast Module

Buckets open deals of each funnel by expected close month, from the current
month onwards.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

import pandas as pd

from config.settings import STATUS_OPEN, MONTH_MAP
from .normalizer import ensure_frame
from .monthly_funnel import funnel_universe, month_key
from .performance import to_calendar_timestamp, start_of_month

logger = logging.getLogger(__name__)


@dataclass
class ForecastBucket:
    """Expected revenue of one future month."""
    month_key: str
    label: str
    total: float
    date: pd.Timestamp


@dataclass
class FunnelForecast:
    """Forecast months of one funnel."""
    funnel: str
    months: List[ForecastBucket] = field(default_factory=list)


def month_label(ts: datetime) -> str:
    """Human-readable month label, e.g. 'janeiro de 2025'."""
    return f"{MONTH_MAP[ts.month]} de {ts.year}"


class ForecastBuilder:
    """
    Builds forecast buckets per funnel.

    Open deals whose expected close date falls before the start of the
    current month are treated as stale and left out.
    """

    def __init__(self, now: datetime):
        """
        Initialize the forecast builder.

        Args:
            now: Reference instant; its calendar defines month boundaries
        """
        self.now = to_calendar_timestamp(now)
        self.start_of_current_month = start_of_month(self.now)

    def _eligible(self, df: pd.DataFrame) -> pd.DataFrame:
        expected = df['expected_close_date']
        mask = (
            (df['status'] == STATUS_OPEN) &
            df['funnel'].notna() &
            expected.notna() &
            (expected >= self.start_of_current_month)
        )
        eligible = df[mask].copy()
        eligible['local_expected'] = eligible['expected_close_date'].dt.tz_convert(self.now.tz)
        return eligible

    @staticmethod
    def _bucket(deals: pd.DataFrame) -> List[ForecastBucket]:
        buckets = {}
        for row in deals.itertuples(index=False):
            local = row.local_expected
            key = month_key(local)
            if key not in buckets:
                buckets[key] = ForecastBucket(month_key=key, label=month_label(local), total=0.0, date=local)
            buckets[key].total += float(row.revenue)
        return sorted(buckets.values(), key=lambda bucket: bucket.date)

    def build(self, deals: Any, funnels: Optional[List[str]] = None) -> List[FunnelForecast]:
        """
        Build the forecast of each funnel.

        Args:
            deals: Raw deal list or normalized frame
            funnels: Funnel universe (derived from the deals when omitted)

        Returns:
            One FunnelForecast per funnel, in universe order
        """
        df = ensure_frame(deals)
        if funnels is None:
            funnels = funnel_universe(df)

        eligible = self._eligible(df)
        logger.debug(
            f"{len(eligible)} open deal(s) forecast from {self.start_of_current_month.date().isoformat()}"
        )

        return [
            FunnelForecast(funnel=funnel, months=self._bucket(eligible[eligible['funnel'] == funnel]))
            for funnel in funnels
        ]


def build_forecast_by_funnel(
    deals: Any,
    now: datetime,
    funnels: Optional[List[str]] = None
) -> List[FunnelForecast]:
    """
    Convenience function to build forecast buckets per funnel.

    Args:
        deals: Raw deal list or normalized frame
        now: Reference instant
        funnels: Funnel universe (derived when omitted)

    Returns:
        List of FunnelForecast
    """
    return ForecastBuilder(now).build(deals, funnels=funnels)
