"""
Deal Normalization Module

Maps raw CRM deal records onto canonical fields: funnel identity through the
alias lists, monetary amounts with comma decimals, stage ordering hints and
UTC timestamps.
"""

import logging
import math
import re
from collections.abc import Mapping, Sequence
from typing import Any, Iterable, List, Optional

import numpy as np
import pandas as pd

from config.settings import (
    FUNNEL_FIELDS,
    STAGE_FIELDS,
    STAGE_ORDER_FIELDS,
    RECURRING_FIELDS,
    NON_RECURRING_FIELDS,
    TOTAL_VALUE_FIELDS,
    CLOSE_DATE_FIELDS,
    EXPECTED_CLOSE_DATE_FIELDS,
    NO_FUNNEL_LABEL,
    NO_STAGE_LABEL,
    STAGE_ORDER_SENTINEL,
)

logger = logging.getLogger(__name__)


class InvalidDealListError(TypeError):
    """Raised when the deal list is not a sequence of mapping records."""
    pass


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if pd.api.types.is_scalar(value):
        return bool(pd.isna(value))
    return False


def first_populated(record: Mapping, fields: Iterable[str]) -> Any:
    """
    Return the value of the first populated key among `fields`.

    Keys are tried in order; None, NaN and blank strings count as missing.

    Args:
        record: Raw deal record
        fields: Ordered alias list (see config.settings)

    Returns:
        The first populated value, or None
    """
    for key in fields:
        value = record.get(key)
        if not _is_blank(value):
            return value
    return None


def normalize_amount(value: Any) -> float:
    """
    Convert a monetary value to a finite float.

    Handles:
    - None / NaN -> 0.0
    - Numbers (bool excluded)
    - Strings with a comma decimal separator ("1.234,56" -> 1234.56)

    Anything that does not parse to a finite number gives 0.0.
    """
    if value is None or isinstance(value, bool):
        return 0.0

    if isinstance(value, str):
        text = re.sub(r"\s+", "", value)
        if "," in text:
            # Comma is the decimal separator, periods group thousands
            text = text.replace(".", "").replace(",", ".")
        try:
            number = float(text)
        except ValueError:
            return 0.0
    else:
        try:
            number = float(value)
        except (TypeError, ValueError, OverflowError):
            return 0.0

    if not np.isfinite(number):
        return 0.0
    return number


def normalize_stage_order(value: Any) -> int:
    """Integer stage ordering hint; STAGE_ORDER_SENTINEL when absent or unparseable."""
    if _is_blank(value) or isinstance(value, bool):
        return STAGE_ORDER_SENTINEL
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError, OverflowError):
        return STAGE_ORDER_SENTINEL
    if not math.isfinite(number):
        return STAGE_ORDER_SENTINEL
    return int(number)


def parse_date(value: Any) -> pd.Timestamp:
    """
    Parse a deal timestamp into a tz-aware UTC Timestamp.

    Handles:
    - ISO strings with or without offset (naive values are read as UTC)
    - datetime / Timestamp objects
    - Numbers as epoch milliseconds
    - Invalid dates like '0000-00-00', blanks and garbage (-> NaT)
    """
    if _is_blank(value) or isinstance(value, bool):
        return pd.NaT

    try:
        if isinstance(value, (int, float, np.integer, np.floating)):
            ts = pd.to_datetime(value, unit="ms", utc=True, errors="coerce")
        else:
            str_val = str(value).strip() if isinstance(value, str) else value
            if isinstance(str_val, str) and (str_val.startswith("0000") or str_val == "None"):
                return pd.NaT
            ts = pd.to_datetime(str_val, utc=True, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return pd.NaT

    if not isinstance(ts, pd.Timestamp):
        return pd.NaT
    return ts


def normalize_funnel(deal: Mapping) -> Optional[str]:
    """Funnel name from the first populated alias, or None when no alias is set."""
    value = first_populated(deal, FUNNEL_FIELDS)
    if value is None:
        return None
    return str(value).strip()


def funnel_label(deal: Mapping) -> str:
    """Funnel name with the "no funnel" sentinel fallback."""
    return normalize_funnel(deal) or NO_FUNNEL_LABEL


class DealNormalizer:
    """
    Builds the canonical deal frame shared by every metrics pass.

    Columns:
    - status, funnel (None when missing), funnel_label (sentinel when missing)
    - stage, stage_order
    - recurring, non_recurring, total_value
    - revenue (recurring + non_recurring)
    - performance_revenue (total_value when non-zero, else revenue)
    - close_date, expected_close_date (datetime64[ns, UTC])
    """

    COLUMNS = [
        'status',
        'funnel',
        'funnel_label',
        'stage',
        'stage_order',
        'recurring',
        'non_recurring',
        'total_value',
        'revenue',
        'performance_revenue',
        'close_date',
        'expected_close_date',
    ]

    DATE_COLS = ['close_date', 'expected_close_date']

    @staticmethod
    def validate(deals: Any) -> List[Mapping]:
        """
        Check the deal list structure.

        Args:
            deals: List/tuple of mappings, or a DataFrame of records

        Returns:
            List of deal records

        Raises:
            InvalidDealListError: If deals is not a sequence of mappings
        """
        if isinstance(deals, pd.DataFrame):
            return deals.to_dict(orient='records')

        if not isinstance(deals, Sequence) or isinstance(deals, (str, bytes)):
            raise InvalidDealListError(
                f"Expected a list of deal records, got {type(deals).__name__}"
            )

        for position, deal in enumerate(deals):
            if not isinstance(deal, Mapping):
                raise InvalidDealListError(
                    f"Deal at position {position} is {type(deal).__name__}, expected a mapping"
                )
        return list(deals)

    @staticmethod
    def normalize_deal(deal: Mapping) -> dict:
        """
        Normalize a single raw deal record.

        Args:
            deal: Raw deal mapping

        Returns:
            Dictionary with the canonical columns
        """
        status = deal.get('status')
        funnel = normalize_funnel(deal)

        stage = first_populated(deal, STAGE_FIELDS)
        recurring = normalize_amount(first_populated(deal, RECURRING_FIELDS))
        non_recurring = normalize_amount(first_populated(deal, NON_RECURRING_FIELDS))
        total_value = normalize_amount(first_populated(deal, TOTAL_VALUE_FIELDS))
        revenue = recurring + non_recurring

        return {
            'status': "" if _is_blank(status) else str(status).strip(),
            'funnel': funnel,
            'funnel_label': funnel or NO_FUNNEL_LABEL,
            'stage': NO_STAGE_LABEL if stage is None else str(stage).strip(),
            'stage_order': normalize_stage_order(first_populated(deal, STAGE_ORDER_FIELDS)),
            'recurring': recurring,
            'non_recurring': non_recurring,
            'total_value': total_value,
            'revenue': revenue,
            # Explicit total overrides the components (current-month performance only)
            'performance_revenue': total_value if total_value else revenue,
            'close_date': parse_date(first_populated(deal, CLOSE_DATE_FIELDS)),
            'expected_close_date': parse_date(first_populated(deal, EXPECTED_CLOSE_DATE_FIELDS)),
        }

    def normalize(self, deals: Any) -> pd.DataFrame:
        """
        Normalize a deal list into the canonical frame.

        The input list and its records are never mutated.

        Args:
            deals: Raw deal list

        Returns:
            DataFrame with one row per deal, in input order
        """
        records = self.validate(deals)
        rows = [self.normalize_deal(deal) for deal in records]

        df = pd.DataFrame(rows, columns=self.COLUMNS)
        df['funnel'] = df['funnel'].astype(object)
        df['stage_order'] = df['stage_order'].astype(int)
        for col in ['recurring', 'non_recurring', 'total_value', 'revenue', 'performance_revenue']:
            df[col] = df[col].astype(float)
        for col in self.DATE_COLS:
            df[col] = pd.to_datetime(df[col], utc=True)

        logger.debug(f"Normalized {len(df)} deal(s)")
        return df


def normalize_deals(deals: Any) -> pd.DataFrame:
    """
    Convenience function to normalize a raw deal list.

    Args:
        deals: Raw deal list

    Returns:
        Canonical deal DataFrame
    """
    return DealNormalizer().normalize(deals)


def ensure_frame(deals: Any) -> pd.DataFrame:
    """Accept either an already-normalized frame or a raw deal list."""
    if isinstance(deals, pd.DataFrame) and set(DealNormalizer.COLUMNS).issubset(deals.columns):
        return deals
    return normalize_deals(deals)
