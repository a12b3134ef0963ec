"""
Unit tests for the stage composition of open deals per funnel.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.settings import NO_STAGE_LABEL, STAGE_ORDER_SENTINEL
from src.processing.pipeline import compose_pipeline_by_funnel


def _open(funnel, stage=None, order=None, rec=0, non_rec=0):
    deal = {"status": "Em andamento", "funil": funnel, "valor_recorrente": rec, "valor_nao_recorrente": non_rec}
    if stage is not None:
        deal["estagio"] = stage
    if order is not None:
        deal["ordem_estagio"] = order
    return deal


def test_groups_and_sums_per_stage():
    deals = [
        _open("A", "Proposta", 2, 100, 10),
        _open("A", "Contato", 1, 50),
        _open("A", "Proposta", 2, "1.000,50", 0),
    ]

    [pipeline] = compose_pipeline_by_funnel(deals)

    assert pipeline.funnel == "A"
    assert [s.stage for s in pipeline.stages] == ["Contato", "Proposta"]
    proposta = pipeline.stages[1]
    assert proposta.count == 2
    assert proposta.recurring == pytest.approx(1100.5)
    assert proposta.non_recurring == 10.0
    assert proposta.stage_order == 2


def test_missing_stage_sorted_last_with_sentinel():
    deals = [
        _open("B"),
        _open("B", "Negociação", 3, 10),
    ]

    [pipeline] = compose_pipeline_by_funnel(deals)

    assert [s.stage for s in pipeline.stages] == ["Negociação", NO_STAGE_LABEL]
    assert pipeline.stages[-1].stage_order == STAGE_ORDER_SENTINEL
    assert pipeline.stages[-1].count == 1


def test_equal_orders_keep_first_seen_order():
    deals = [
        _open("A", "Zeta", 1),
        _open("A", "Alpha", 1),
        _open("A", "Beta"),
        _open("A", "Gamma"),
    ]

    [pipeline] = compose_pipeline_by_funnel(deals)

    assert [s.stage for s in pipeline.stages] == ["Zeta", "Alpha", "Beta", "Gamma"]


def test_only_open_deals_of_the_funnel():
    deals = [
        _open("A", "Contato", 1, 10),
        {"status": "Ganha", "funil": "A", "estagio": "Contato", "valor_recorrente": 999,
         "data_fechamento": "2025-01-01"},
        {"status": "Perdida", "funil": "A", "estagio": "Contato", "valor_recorrente": 999},
        _open("B", "Contato", 1, 20),
    ]

    pipelines = compose_pipeline_by_funnel(deals)

    assert [p.funnel for p in pipelines] == ["A", "B"]
    assert pipelines[0].stages[0].count == 1
    assert pipelines[0].stages[0].recurring == 10.0
    assert pipelines[1].stages[0].recurring == 20.0


def test_won_only_funnel_has_empty_pipeline():
    deals = [{"status": "Ganha", "funil": "A", "data_fechamento": "2025-01-01"}]

    [pipeline] = compose_pipeline_by_funnel(deals)

    assert pipeline.funnel == "A"
    assert pipeline.stages == []


def test_open_deal_without_forecast_date_still_counts():
    deals = [_open("A", "Contato", 1, 10)]

    [pipeline] = compose_pipeline_by_funnel(deals)

    assert pipeline.stages[0].count == 1


def test_explicit_funnel_list():
    deals = [_open("A", "Contato", 1, 10)]

    pipelines = compose_pipeline_by_funnel(deals, funnels=["X", "A"])

    assert [p.funnel for p in pipelines] == ["X", "A"]
    assert pipelines[0].stages == []
    assert len(pipelines[1].stages) == 1
