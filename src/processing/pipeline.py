"""
Pipeline Composition Module

Groups open deals of each funnel by pipeline stage.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional

import pandas as pd

from config.settings import STATUS_OPEN
from .normalizer import ensure_frame
from .monthly_funnel import funnel_universe


@dataclass
class StageBucket:
    """Open deals of one stage."""
    stage: str
    stage_order: int
    count: int
    recurring: float
    non_recurring: float


@dataclass
class FunnelPipeline:
    """Stage composition of one funnel."""
    funnel: str
    stages: List[StageBucket] = field(default_factory=list)


def compose_stages(open_deals: pd.DataFrame) -> List[StageBucket]:
    """
    Build the stage buckets of a set of open deals.

    Stages are grouped in first-seen order, then sorted by stage order with a
    stable sort, so equal orders keep their first-seen sequence. The stage
    order of a bucket is the one of its first deal.
    """
    if open_deals.empty:
        return []

    grouped = open_deals.groupby('stage', sort=False).agg(
        stage_order=('stage_order', 'first'),
        count=('recurring', 'size'),
        recurring=('recurring', 'sum'),
        non_recurring=('non_recurring', 'sum'),
    )
    grouped = grouped.sort_values('stage_order', kind='mergesort')

    return [
        StageBucket(
            stage=str(stage),
            stage_order=int(row['stage_order']),
            count=int(row['count']),
            recurring=float(row['recurring']),
            non_recurring=float(row['non_recurring'])
        )
        for stage, row in grouped.iterrows()
    ]


def compose_pipeline_by_funnel(deals: Any, funnels: Optional[List[str]] = None) -> List[FunnelPipeline]:
    """
    Stage composition of open deals for each funnel.

    Args:
        deals: Raw deal list or normalized frame
        funnels: Funnel universe (derived from the deals when omitted)

    Returns:
        One FunnelPipeline per funnel, in universe order
    """
    df = ensure_frame(deals)
    if funnels is None:
        funnels = funnel_universe(df)

    open_deals = df[df['status'] == STATUS_OPEN]
    return [
        FunnelPipeline(funnel=funnel, stages=compose_stages(open_deals[open_deals['funnel'] == funnel]))
        for funnel in funnels
    ]
