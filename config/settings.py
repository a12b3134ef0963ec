"""
Revenue Dashboard Configuration Settings

Loads environment variables and defines application constants.
"""

import os
from dataclasses import dataclass, field
from typing import List, Dict, Tuple

from dotenv import load_dotenv


def get_secret(key: str, default: str = "") -> str:
    """
    Return a configuration value from the environment (optionally loaded from .env).
    """
    return os.getenv(key, default)


def _float_secret(key: str, default: float) -> float:
    raw = get_secret(key, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# Load environment variables from .env file
load_dotenv()


# Status Configuration (labels as exported by the CRM)
STATUS_WON: str = "Ganha"
STATUS_OPEN: str = "Em andamento"

# Field aliases, in priority order. The first populated key wins.
FUNNEL_FIELDS: Tuple[str, ...] = ("funil", "pipeline_name", "pipeline", "nome_funil")
STAGE_FIELDS: Tuple[str, ...] = ("estagio",)
STAGE_ORDER_FIELDS: Tuple[str, ...] = ("ordem_estagio",)
RECURRING_FIELDS: Tuple[str, ...] = ("valor_recorrente",)
NON_RECURRING_FIELDS: Tuple[str, ...] = ("valor_nao_recorrente",)
TOTAL_VALUE_FIELDS: Tuple[str, ...] = ("valor",)
CLOSE_DATE_FIELDS: Tuple[str, ...] = ("data_fechamento",)
EXPECTED_CLOSE_DATE_FIELDS: Tuple[str, ...] = ("previsao_fechamento",)

# Sentinels for missing identity
NO_FUNNEL_LABEL: str = "Sem funil"
NO_STAGE_LABEL: str = "Sem estágio"
STAGE_ORDER_SENTINEL: int = 999

# Date field selector for the monthly aggregate: canonical column -> source key
DATE_FIELD_ALIASES: Dict[str, str] = {
    "close_date": "close_date",
    "expected_close_date": "expected_close_date",
    "data_fechamento": "close_date",
    "previsao_fechamento": "expected_close_date",
}

# Monthly target shared by every funnel
TARGET_PER_FUNNEL: float = 600000.0

# Display colours, assigned by funnel position
FUNNEL_COLORS: List[str] = [
    "#1976d2",
    "#9c27b0",
    "#2e7d32",
    "#ed6c02",
    "#d32f2f",
    "#0288d1",
]

# Portuguese Month Mapping (forecast labels)
MONTH_MAP: Dict[int, str] = {
    1: "janeiro",
    2: "fevereiro",
    3: "março",
    4: "abril",
    5: "maio",
    6: "junho",
    7: "julho",
    8: "agosto",
    9: "setembro",
    10: "outubro",
    11: "novembro",
    12: "dezembro"
}


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    # Deals API
    deals_api_url: str = field(
        default_factory=lambda: get_secret(
            "DEALS_API_URL",
            "https://app-mlc-api-epdqf4eye5etd4dh.canadacentral-01.azurewebsites.net"
        )
    )
    api_timeout: int = field(default_factory=lambda: int(get_secret("API_TIMEOUT", "30")))

    # Metrics
    target_per_funnel: float = field(
        default_factory=lambda: _float_secret("TARGET_PER_FUNNEL", TARGET_PER_FUNNEL)
    )
    # Calendar used for "current month" and forecast buckets
    timezone: str = field(default_factory=lambda: get_secret("DASHBOARD_TIMEZONE", "America/Sao_Paulo"))


# Singleton instance
settings = Settings()
