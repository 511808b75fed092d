from __future__ import annotations

import pytest

from valuation_engine.exceptions import ScenarioCalculationError, ValuationEngineError
from valuation_engine.models.assumptions import VariantConfig
from valuation_engine.models.common import SCENARIO_ORDER, DCFVariant, ScenarioType
from valuation_engine.sample_data import build_sample_assumptions, build_sample_baseline
from valuation_engine.services.calculator import DCFCalculator, compute_dcf


def test_sample_assumptions_generate_results():
    assumptions = build_sample_assumptions(uniform=False)
    baseline = build_sample_baseline()
    result = compute_dcf(assumptions, baseline)

    assert result.is_complete
    assert list(result.scenarios) == list(SCENARIO_ORDER)
    assert len(result.projections[ScenarioType.BASE]) == 5
    assert result.valuations[ScenarioType.PESSIMISTIC] < result.valuations[ScenarioType.BASE]
    assert result.valuations[ScenarioType.BASE] < result.valuations[ScenarioType.OPTIMISTIC]


def test_bridge_applies_marketability_discount(base_result, baseline):
    bridge = base_result.bridge

    assert bridge.enterprise_value == pytest.approx(bridge.sum_pv_fcf + bridge.terminal_pv)
    assert bridge.marketability_discount_rate == 0.20
    assert base_result.valuation == pytest.approx(bridge.enterprise_value * 0.8)
    assert bridge.equity_value == pytest.approx(bridge.enterprise_value - baseline.net_debt)


def test_forward_looking_uses_higher_discount_and_longer_horizon(assumptions, baseline):
    result = compute_dcf(assumptions, baseline, VariantConfig(variant=DCFVariant.FORWARD_LOOKING))
    base = result.scenario(ScenarioType.BASE)

    assert base.bridge.marketability_discount_rate == 0.30
    assert len(base.projections) == 7


def test_marketability_discount_override(assumptions, baseline):
    result = compute_dcf(assumptions, baseline, VariantConfig(marketability_discount=0.0))

    bridge = result.scenario(ScenarioType.BASE).bridge
    assert bridge.marketability_discount == 0
    assert bridge.discounted_enterprise_value == bridge.enterprise_value


def test_terminal_growth_stays_below_wacc(assumptions, baseline):
    broken = dict(assumptions)
    broken[ScenarioType.OPTIMISTIC] = assumptions[ScenarioType.OPTIMISTIC].model_copy(update={"terminal_growth": 0.15})
    result = compute_dcf(broken, baseline)

    optimistic = result.scenario(ScenarioType.OPTIMISTIC)
    assert optimistic.terminal_value.growth_adjusted
    assert optimistic.assumptions.terminal_growth == pytest.approx(0.09)
    for scenario in result.scenarios.values():
        assert scenario.terminal_value.terminal_growth_rate < scenario.terminal_value.wacc


def test_failed_scenario_does_not_block_others(assumptions, baseline):
    broken = dict(assumptions)
    broken[ScenarioType.PESSIMISTIC] = assumptions[ScenarioType.PESSIMISTIC].model_copy(update={"wacc": float("nan")})
    result = compute_dcf(broken, baseline)

    assert not result.is_complete
    assert set(result.scenarios) == {ScenarioType.BASE, ScenarioType.OPTIMISTIC}
    assert result.failures[ScenarioType.PESSIMISTIC].field == "wacc"
    with pytest.raises(ScenarioCalculationError) as excinfo:
        result.scenario(ScenarioType.PESSIMISTIC)
    assert excinfo.value.scenario == "pessimistic"


def test_missing_scenario_is_recorded_as_failure(assumptions, baseline):
    partial = {ScenarioType.BASE: assumptions[ScenarioType.BASE]}
    result = compute_dcf(partial, baseline)

    assert set(result.failures) == {ScenarioType.PESSIMISTIC, ScenarioType.OPTIMISTIC}
    assert result.failures[ScenarioType.OPTIMISTIC].field == "assumptions"


def test_threaded_run_matches_sequential(assumptions, baseline, config):
    sequential = DCFCalculator().run(assumptions, baseline, config)
    threaded = DCFCalculator(max_workers=3).run(assumptions, baseline, config)

    assert threaded == sequential


def test_repeated_runs_are_identical(assumptions, baseline, config):
    assert compute_dcf(assumptions, baseline, config) == compute_dcf(assumptions, baseline, config)


def test_summary_weights_scenarios():
    result = compute_dcf(build_sample_assumptions(uniform=False), build_sample_baseline())
    summary = result.summary()
    equity = summary.equity_values

    expected = 0.25 * equity[ScenarioType.PESSIMISTIC] + 0.5 * equity[ScenarioType.BASE] + 0.25 * equity[ScenarioType.OPTIMISTIC]
    assert summary.weighted_equity_value == pytest.approx(expected)


def test_summary_renormalizes_over_completed_scenarios(assumptions, baseline):
    result = compute_dcf({ScenarioType.BASE: assumptions[ScenarioType.BASE]}, baseline)
    summary = result.summary()

    assert summary.weights == {ScenarioType.BASE: 1.0}
    assert summary.weighted_equity_value == pytest.approx(summary.equity_values[ScenarioType.BASE])


def test_summary_without_scenarios_raises(baseline):
    result = compute_dcf({}, baseline)

    with pytest.raises(ValuationEngineError) as excinfo:
        result.summary()
    assert excinfo.value.code == "NO_SCENARIOS"
