"""
Tests for the dashboard metrics engine running all passes together.
"""

import copy
import json
import sys
from datetime import datetime
from pathlib import Path

import pandas as pd
import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.processing import DashboardMetricsEngine, InvalidDealListError, compute_dashboard_metrics

NOW = datetime(2025, 1, 20, 9, 30)

DEALS = [
    {"status": "Ganha", "funil": "Transportes", "data_fechamento": "2024-12-10",
     "valor_recorrente": 1000, "valor_nao_recorrente": "250,50"},
    {"status": "Ganha", "funil": "Transportes", "data_fechamento": "2025-01-08",
     "valor_recorrente": 2000, "valor_nao_recorrente": 0, "valor": 2500},
    {"status": "Ganha", "pipeline_name": "Armazenagem", "data_fechamento": "2025-01-12",
     "valor_recorrente": "1.000,00"},
    {"status": "Em andamento", "funil": "Transportes", "estagio": "Proposta", "ordem_estagio": 2,
     "previsao_fechamento": "2025-02-15", "valor_recorrente": 300, "valor_nao_recorrente": 20},
    {"status": "Em andamento", "funil": "Transportes", "estagio": "Contato", "ordem_estagio": 1,
     "previsao_fechamento": "2024-11-30", "valor_recorrente": 10},
    {"status": "Em andamento", "nome_funil": "Projetos", "previsao_fechamento": "2025-03-01",
     "valor_nao_recorrente": 5000},
    {"status": "Perdida", "funil": "Fantasma", "data_fechamento": "2025-01-02", "valor_recorrente": 1},
    {"status": "Ganha", "funil": "Transportes", "data_fechamento": "invalid", "valor_recorrente": 999},
]


def test_funnel_universe():
    metrics = compute_dashboard_metrics(DEALS, NOW)

    assert metrics.funnels == ["Transportes", "Armazenagem", "Projetos"]
    assert "Fantasma" not in metrics.funnels


def test_monthly_series():
    metrics = compute_dashboard_metrics(DEALS, NOW)

    assert metrics.monthly.records() == [
        {"month": "2024-12", "Transportes": 1250.5, "Armazenagem": 0.0, "Projetos": 0.0, "total": 1250.5},
        {"month": "2025-01", "Transportes": 2000.0, "Armazenagem": 1000.0, "Projetos": 0.0, "total": 3000.0},
    ]
    assert metrics.monthly.funnels == ["Transportes", "Armazenagem"]


def test_performance():
    metrics = compute_dashboard_metrics(DEALS, NOW, target_per_funnel=10000)

    by_funnel = {p.funnel: p for p in metrics.performance}
    assert by_funnel["Transportes"].actual == 2500.0
    assert by_funnel["Transportes"].percentage == pytest.approx(25.0)
    assert by_funnel["Armazenagem"].actual == 1000.0
    assert by_funnel["Projetos"].actual == 0.0
    for perf in metrics.performance:
        assert 0.0 <= perf.percentage <= 100.0
        assert 0.0 <= perf.prorated_percentage <= 100.0
        assert perf.prorated_target == pytest.approx(10000 * 20 / 31)


def test_pipelines_and_forecasts():
    metrics = compute_dashboard_metrics(DEALS, NOW)

    pipelines = {p.funnel: p for p in metrics.pipelines}
    assert [s.stage for s in pipelines["Transportes"].stages] == ["Contato", "Proposta"]
    assert pipelines["Armazenagem"].stages == []
    assert pipelines["Projetos"].stages[0].non_recurring == 5000.0

    forecasts = {f.funnel: f for f in metrics.forecasts}
    # The stale November forecast is left out
    assert [(m.month_key, m.total) for m in forecasts["Transportes"].months] == [("2025-02", 320.0)]
    assert [m.label for m in forecasts["Projetos"].months] == ["março de 2025"]
    assert forecasts["Armazenagem"].months == []


def test_idempotent_and_input_untouched():
    original = copy.deepcopy(DEALS)
    engine = DashboardMetricsEngine(target_per_funnel=600000)

    first = engine.compute(DEALS, NOW).to_dict()
    second = engine.compute(DEALS, NOW).to_dict()

    assert first == second
    assert DEALS == original


def test_to_dict_is_json_serialisable():
    payload = compute_dashboard_metrics(DEALS, NOW).to_dict()

    text = json.dumps(payload, ensure_ascii=False)
    assert "março de 2025" in text
    assert payload["monthly"]["all_funnels"] == ["Transportes", "Armazenagem", "Projetos"]
    assert payload["forecasts"][0]["months"][0]["date"].startswith("2025-02-15")


def test_accepts_dataframe_input():
    frame = pd.DataFrame(DEALS)

    from_frame = compute_dashboard_metrics(frame, NOW).to_dict()
    from_list = compute_dashboard_metrics(DEALS, NOW).to_dict()

    assert from_frame == from_list


def test_expected_close_date_selector():
    metrics = compute_dashboard_metrics(DEALS, NOW, date_field="previsao_fechamento")

    # No won deal carries a forecast date
    assert metrics.monthly.rows == []


def test_empty_deal_list():
    metrics = compute_dashboard_metrics([], NOW)

    assert metrics.funnels == []
    assert metrics.monthly.rows == []
    assert metrics.performance == []
    assert metrics.pipelines == []
    assert metrics.forecasts == []


def test_structural_errors_fail_fast():
    with pytest.raises(InvalidDealListError):
        compute_dashboard_metrics({"status": "Ganha"}, NOW)
    with pytest.raises(InvalidDealListError):
        compute_dashboard_metrics(None, NOW)


def test_invalid_configuration():
    with pytest.raises(ValueError):
        DashboardMetricsEngine(target_per_funnel=0)
    with pytest.raises(ValueError):
        DashboardMetricsEngine(date_field="created_at")
