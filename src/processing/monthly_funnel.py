"""
Monthly Funnel Aggregation Module

Buckets won deals by closing month (UTC) and funnel, producing a dense
time series with a per-month total, and derives the funnel universe shared
by the other metrics passes.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from config.settings import STATUS_WON, STATUS_OPEN, DATE_FIELD_ALIASES
from .normalizer import ensure_frame

logger = logging.getLogger(__name__)


def month_key(ts: datetime) -> str:
    """Calendar month key 'YYYY-MM' (zero-padded, sorts chronologically)."""
    return f"{ts.year:04d}-{ts.month:02d}"


def resolve_date_field(date_field: str) -> str:
    """
    Map a date field selector onto its canonical column.

    Raises:
        ValueError: If the selector is not a known date field
    """
    try:
        return DATE_FIELD_ALIASES[date_field]
    except KeyError:
        raise ValueError(
            f"Unknown date field '{date_field}', expected one of {sorted(DATE_FIELD_ALIASES)}"
        )


def closed_funnels(df: pd.DataFrame) -> List[str]:
    """Funnel labels of every won deal, in first-seen order."""
    won = df[df['status'] == STATUS_WON]
    return won['funnel_label'].drop_duplicates().tolist()


def open_funnels(df: pd.DataFrame) -> List[str]:
    """Named funnels with at least one open deal, in first-seen order."""
    open_deals = df[(df['status'] == STATUS_OPEN) & df['funnel'].notna()]
    return open_deals['funnel'].drop_duplicates().tolist()


def merge_funnels(closed: Iterable[str], opened: Iterable[str]) -> List[str]:
    """Union of two funnel lists, keeping the closed funnels first."""
    return list(dict.fromkeys([*closed, *opened]))


def funnel_universe(deals: Any) -> List[str]:
    """
    Full funnel universe: funnels seen among won deals plus funnels seen among open deals.

    Args:
        deals: Raw deal list or normalized frame

    Returns:
        Ordered list of funnel names
    """
    df = ensure_frame(deals)
    return merge_funnels(closed_funnels(df), open_funnels(df))


@dataclass
class MonthlyFunnelRow:
    """Won revenue of one month, per funnel."""
    month: str
    values: Dict[str, float] = field(default_factory=dict)
    total: float = 0.0

    def as_record(self) -> Dict[str, Any]:
        """Flat chart-friendly record: {"month": ..., <funnel>: ..., "total": ...}."""
        record: Dict[str, Any] = {'month': self.month}
        record.update(self.values)
        record['total'] = self.total
        return record


@dataclass
class MonthlyFunnelSeries:
    """Dense monthly series plus the funnel lists used to draw it."""
    rows: List[MonthlyFunnelRow]
    funnels: List[str]
    all_funnels: List[str]

    @property
    def months(self) -> List[str]:
        return [row.month for row in self.rows]

    def records(self) -> List[Dict[str, Any]]:
        return [row.as_record() for row in self.rows]

    def to_frame(self) -> pd.DataFrame:
        """Flattened rows as a DataFrame (one column per funnel, plus month and total)."""
        columns = ['month', *self.all_funnels, 'total']
        return pd.DataFrame(self.records(), columns=columns)


def aggregate_won_by_month_and_funnel(
    deals: Any,
    date_field: str = "close_date",
    extra_funnels: Optional[Iterable[str]] = None
) -> MonthlyFunnelSeries:
    """
    Aggregate won revenue by month and funnel.

    Rules:
    - Only won deals with a valid timestamp in `date_field` are bucketed
    - Month keys come from the UTC timestamp
    - Revenue is recurring + non-recurring (no explicit total override)
    - Rows are dense over closed funnels plus `extra_funnels`
      (defaults to the funnels of open deals)
    - `total` sums the closed funnels only

    Args:
        deals: Raw deal list or normalized frame
        date_field: 'close_date' or 'expected_close_date' (source names accepted)
        extra_funnels: Funnels to zero-fill in every row

    Returns:
        MonthlyFunnelSeries with rows sorted by month
    """
    column = resolve_date_field(date_field)
    df = ensure_frame(deals)

    closed = closed_funnels(df)
    if extra_funnels is None:
        extra_funnels = open_funnels(df)
    all_funnels = merge_funnels(closed, extra_funnels)

    won = df[(df['status'] == STATUS_WON) & df[column].notna()]

    totals: Dict[str, Dict[str, float]] = {}
    if not won.empty:
        months = won[column].dt.strftime('%Y-%m')
        grouped = won.assign(month=months).groupby(['month', 'funnel_label'], sort=False)['revenue'].sum()
        for (month, funnel), amount in grouped.items():
            totals.setdefault(month, {})[funnel] = float(amount)

    skipped = int((df['status'] == STATUS_WON).sum()) - len(won)
    if skipped:
        logger.debug(f"Skipped {skipped} won deal(s) without a valid {column}")

    rows = []
    for month in sorted(totals):
        by_funnel = totals[month]
        values = {funnel: by_funnel.get(funnel, 0.0) for funnel in all_funnels}
        total = sum(by_funnel.get(funnel, 0.0) for funnel in closed)
        rows.append(MonthlyFunnelRow(month=month, values=values, total=total))

    return MonthlyFunnelSeries(rows=rows, funnels=closed, all_funnels=all_funnels)
