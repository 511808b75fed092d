from __future__ import annotations

import pytest

from valuation_engine.config import EnginePolicy
from valuation_engine.models.readiness import AdjustmentFactors, ReadinessCategory
from valuation_engine.sample_data import build_sample_readiness
from valuation_engine.services.adjustment_factors import compute_adjustment_factors, impact_to_factor

C = ReadinessCategory


def test_zero_impacts_are_neutral():
    factors = compute_adjustment_factors(build_sample_readiness({category: 0.0 for category in C}))

    assert factors == AdjustmentFactors.neutral()


def test_missing_or_malformed_analysis_is_neutral():
    assert compute_adjustment_factors(None) == AdjustmentFactors.neutral()
    assert compute_adjustment_factors({"assessments": "broken"}) == AdjustmentFactors.neutral()
    assert compute_adjustment_factors({"assessments": {}, "category_weights": {}}) == AdjustmentFactors.neutral()


def test_category_factors_follow_impacts(readiness):
    factors = compute_adjustment_factors(readiness)

    assert factors.customer_concentration_factor == pytest.approx(0.90)
    assert factors.contract_structure_factor == pytest.approx(1.05)
    assert factors.category_factor(C.DOCUMENTATION) == pytest.approx(0.96)


def test_overall_factor_is_weighted_mean(readiness):
    factors = compute_adjustment_factors(readiness)
    expected = 0.2 * -10 + 0.15 * -5 + 0.1 * 5 + 0.15 * 0 + 0.1 * -2 + 0.1 * 3 + 0.1 * 4 + 0.1 * -4

    assert factors.overall_factor == pytest.approx(impact_to_factor(expected))


def test_overall_factor_uses_only_weights_in_use():
    analysis = build_sample_readiness({C.FINANCIAL: -10.0, C.LEGAL: 10.0})
    factors = compute_adjustment_factors(analysis)

    assert factors.overall_factor == pytest.approx(1 + (0.15 * -10 + 0.1 * 10) / 0.25 / 100)


def test_method_factors_blend_categories(readiness):
    factors = compute_adjustment_factors(readiness)

    assert factors.revenue_multiple_factor == pytest.approx(1 + (0.35 * -10 + 0.30 * 5 + 0.25 * 4 + 0.10 * -4) / 100)
    assert factors.ebit_multiple_factor == pytest.approx(1 + (0.30 * 3 + 0.30 * 0 + 0.25 * -5 + 0.15 * -4) / 100)
    assert factors.ebitda_multiple_factor == pytest.approx(1 + (0.35 * 3 + 0.25 * 0 + 0.25 * -5 + 0.15 * -4) / 100)
    assert factors.pe_multiple_factor == pytest.approx(1 + (0.40 * 0 + 0.25 * -2 + 0.20 * 3 + 0.15 * -4) / 100)


def test_extreme_impacts_are_bounded():
    analysis = build_sample_readiness({category: 400.0 for category in C})
    factors = compute_adjustment_factors(analysis)

    assert factors.customer_concentration_factor == pytest.approx(5.0)
    assert factors.overall_factor == 2.0
    assert factors.revenue_multiple_factor == 2.0

    factors = compute_adjustment_factors(analysis, EnginePolicy(factor_cap=3.0))
    assert factors.overall_factor == 3.0


def test_raw_payload_is_accepted(readiness):
    assert compute_adjustment_factors(readiness.model_dump(mode="json")) == compute_adjustment_factors(readiness)
