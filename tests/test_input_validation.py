from __future__ import annotations

from datetime import date

from valuation_engine.models.common import ScenarioType
from valuation_engine.models.validation import Severity
from valuation_engine.sample_data import (
    build_sample_assumptions,
    build_sample_forward_inputs,
    build_sample_full_inputs,
    build_sample_simplified_inputs,
)
from valuation_engine.services.input_validation import validate_assumption_set, validate_dcf_inputs

TODAY = date(2025, 6, 1)


def _fields(result):
    return {issue.field for issue in result.issues}


def test_sample_inputs_are_valid():
    for inputs in (build_sample_full_inputs(), build_sample_simplified_inputs(), build_sample_forward_inputs()):
        result = validate_dcf_inputs(inputs, today=TODAY)
        assert result.is_valid, result.summary


def test_missing_company_name_is_an_error():
    inputs = build_sample_full_inputs().model_copy(update={"company_name": "  "})
    result = validate_dcf_inputs(inputs, today=TODAY)

    assert not result.is_valid
    assert "company_name" in {issue.field for issue in result.errors}


def test_net_cash_and_unusual_horizon_are_warnings():
    inputs = build_sample_full_inputs().model_copy(update={"net_debt": -100_000, "projection_years": 15})
    result = validate_dcf_inputs(inputs, today=TODAY)

    assert result.is_valid
    assert {"net_debt", "projection_years"} <= {issue.field for issue in result.warnings}


def test_unparseable_inputs_are_critical():
    result = validate_dcf_inputs({"variant": "full_dcf", "company_name": "X"}, today=TODAY)

    assert not result.is_valid
    assert all(issue.severity == Severity.CRITICAL for issue in result.issues)
    assert "critical" in result.summary


def test_forward_looking_market_checks():
    inputs = build_sample_forward_inputs()
    market = inputs.market_analysis.model_copy(
        update={"serviceable_addressable_market": 900_000_000, "target_market_share": [0.1, 0.3]}
    )
    ventures = inputs.venture_adjustments.model_copy(update={"failure_probability": 0.7})
    metrics = inputs.startup_metrics.model_copy(update={"runway_months": 6})
    inputs = inputs.model_copy(update={"market_analysis": market, "venture_adjustments": ventures, "startup_metrics": metrics})
    result = validate_dcf_inputs(inputs, today=TODAY)

    assert not result.is_valid
    assert "market_analysis" in {issue.field for issue in result.errors}
    assert {
        "market_analysis.target_market_share",
        "venture_adjustments.failure_probability",
        "startup_metrics.runway_months",
    } <= {issue.field for issue in result.warnings}


def test_simplified_benchmark_reliance_warning():
    inputs = build_sample_simplified_inputs()
    inputs = inputs.model_copy(update={"benchmark_data": inputs.benchmark_data.model_copy(update={"benchmark_weight": 0.95})})
    result = validate_dcf_inputs(inputs, today=TODAY)

    assert "benchmark_data.benchmark_weight" in _fields(result)


def test_sample_assumption_set_is_clean():
    result = validate_assumption_set(build_sample_assumptions(uniform=False))

    assert result.is_valid
    assert result.issues == []
    assert result.summary == "Validation passed with no issues"


def test_terminal_growth_at_wacc_is_an_error():
    assumptions = build_sample_assumptions()
    assumptions[ScenarioType.BASE] = assumptions[ScenarioType.BASE].model_copy(update={"terminal_growth": 0.10})
    result = validate_assumption_set(assumptions)

    assert not result.is_valid
    assert "base.terminal_growth" in {issue.field for issue in result.errors}


def test_missing_scenario_is_critical():
    assumptions = build_sample_assumptions()
    del assumptions[ScenarioType.OPTIMISTIC]
    result = validate_assumption_set(assumptions)

    assert [issue.field for issue in result.errors] == ["scenarios.optimistic"]
    assert result.errors[0].severity == Severity.CRITICAL


def test_accelerating_growth_and_inconsistent_scenarios_warn():
    assumptions = build_sample_assumptions()
    assumptions[ScenarioType.BASE] = assumptions[ScenarioType.BASE].model_copy(
        update={"revenue_growth": [0.05, 0.10, 0.10], "wacc": 0.12}
    )
    assumptions[ScenarioType.OPTIMISTIC] = assumptions[ScenarioType.OPTIMISTIC].model_copy(update={"terminal_growth": 0.01})
    result = validate_assumption_set(assumptions)

    assert result.is_valid
    assert "base.revenue_growth[1]" in _fields(result)
    consistency = [issue for issue in result.warnings if issue.field == "scenario.consistency"]
    assert len(consistency) == 2


def test_market_wacc_deviation_warns():
    result = validate_assumption_set(build_sample_assumptions(), market_wacc=0.20)

    assert result.is_valid
    assert "base.wacc" in _fields(result)
