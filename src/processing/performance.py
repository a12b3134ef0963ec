"""
Current-Month Performance Module

Compares each funnel's won revenue for the current month against its
monthly target, prorated by the day of the month.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd

from config.settings import STATUS_WON, FUNNEL_COLORS
from .normalizer import ensure_frame
from .monthly_funnel import funnel_universe, month_key

logger = logging.getLogger(__name__)


@dataclass
class FunnelPerformance:
    """Current-month result of one funnel."""
    funnel: str
    actual: float
    target: float
    prorated_target: float
    percentage: float
    prorated_percentage: float
    fill: str


def clamp_percentage(value: float) -> float:
    """Clamp a percentage to [0, 100]."""
    return float(min(100.0, max(0.0, value)))


def to_calendar_timestamp(now: datetime) -> pd.Timestamp:
    """
    Reference instant as a tz-aware Timestamp.

    A naive `now` is read on the UTC calendar.
    """
    ts = pd.Timestamp(now)
    if ts.tz is None:
        ts = ts.tz_localize('UTC')
    return ts


def start_of_month(now: datetime) -> pd.Timestamp:
    """Midnight on the first day of `now`'s month, in `now`'s calendar."""
    ts = to_calendar_timestamp(now)
    return pd.Timestamp(year=ts.year, month=ts.month, day=1, tz=ts.tz)


class PerformanceCalculator:
    """
    Calculates current-month performance per funnel.

    The calendar (current day, days in month, deal months) is the one of `now`,
    so prorating follows the wall-clock day the dashboard is viewed on.
    """

    def __init__(self, target_per_funnel: float, targets: Optional[Dict[str, float]] = None):
        """
        Initialize the calculator.

        Args:
            target_per_funnel: Monthly target applied to every funnel
            targets: Optional per-funnel overrides of the shared target

        Raises:
            ValueError: If any target is not strictly positive
        """
        if not target_per_funnel or target_per_funnel <= 0:
            raise ValueError(f"target_per_funnel must be strictly positive, got {target_per_funnel}")
        for funnel, target in (targets or {}).items():
            if not target or target <= 0:
                raise ValueError(f"Target for funnel '{funnel}' must be strictly positive, got {target}")

        self.target_per_funnel = float(target_per_funnel)
        self.targets = dict(targets or {})

    def target_for(self, funnel: str) -> float:
        return float(self.targets.get(funnel, self.target_per_funnel))

    def _current_month_mask(self, df: pd.DataFrame, now: pd.Timestamp) -> pd.Series:
        local_close = df['close_date'].dt.tz_convert(now.tz)
        return (
            (df['status'] == STATUS_WON) &
            local_close.notna() &
            (local_close.dt.year == now.year) &
            (local_close.dt.month == now.month)
        )

    def calculate(
        self,
        deals: Any,
        now: datetime,
        funnels: Optional[List[str]] = None
    ) -> List[FunnelPerformance]:
        """
        Calculate performance for each funnel of the universe.

        Args:
            deals: Raw deal list or normalized frame
            now: Reference instant
            funnels: Funnel universe (derived from the deals when omitted)

        Returns:
            One FunnelPerformance per funnel, in universe order
        """
        df = ensure_frame(deals)
        if funnels is None:
            funnels = funnel_universe(df)

        ts = to_calendar_timestamp(now)
        current_month = month_key(ts)
        current_day = ts.day
        days_in_month = ts.days_in_month

        current = df[self._current_month_mask(df, ts)]
        actual_by_funnel = current.groupby('funnel')['performance_revenue'].sum().to_dict()

        logger.debug(f"Current month: {current_month}")
        logger.debug(f"Current day: {current_day} of {days_in_month}")
        logger.debug(f"Prorated target: {self.target_per_funnel * current_day / days_in_month}")
        logger.debug(f"Current month deals count: {len(current)}")

        results = []
        for index, funnel in enumerate(funnels):
            target = self.target_for(funnel)
            prorated_target = target * current_day / days_in_month
            actual = float(actual_by_funnel.get(funnel, 0.0))

            results.append(FunnelPerformance(
                funnel=funnel,
                actual=actual,
                target=target,
                prorated_target=prorated_target,
                percentage=clamp_percentage(actual * 100.0 / target),
                prorated_percentage=clamp_percentage(prorated_target * 100.0 / target),
                fill=FUNNEL_COLORS[index % len(FUNNEL_COLORS)]
            ))

        return results


def calculate_current_month_performance(
    deals: Any,
    now: datetime,
    target_per_funnel: float,
    targets: Optional[Dict[str, float]] = None,
    funnels: Optional[List[str]] = None
) -> List[FunnelPerformance]:
    """
    Convenience function to compute current-month performance.

    Args:
        deals: Raw deal list or normalized frame
        now: Reference instant
        target_per_funnel: Monthly target per funnel
        targets: Optional per-funnel target overrides
        funnels: Funnel universe (derived when omitted)

    Returns:
        List of FunnelPerformance
    """
    calculator = PerformanceCalculator(target_per_funnel, targets=targets)
    return calculator.calculate(deals, now, funnels=funnels)
