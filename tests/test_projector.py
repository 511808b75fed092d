from __future__ import annotations

from datetime import date

import pytest

from valuation_engine.config import EnginePolicy
from valuation_engine.exceptions import ScenarioCalculationError
from valuation_engine.models.assumptions import ScenarioAssumptions
from valuation_engine.models.common import ScenarioType, value_for_year
from valuation_engine.services.projector import ScenarioProjector, breakeven_margin, glide_margin, margin_path


def _project(assumptions, base_revenue=1_000_000, base_working_capital=None, years=5):
    return ScenarioProjector().project(
        ScenarioType.BASE, assumptions, base_revenue, base_working_capital, years, date(2024, 12, 31)
    )


def test_first_year_revenue_and_ebitda(base_assumptions):
    rows = _project(base_assumptions)

    assert rows[0].revenue == pytest.approx(1_100_000)
    assert rows[0].ebitda == pytest.approx(220_000)
    assert [row.year for row in rows] == [2025, 2026, 2027, 2028, 2029]


def test_discount_factors_follow_wacc(base_assumptions):
    rows = _project(base_assumptions)

    for i, row in enumerate(rows):
        assert row.discount_factor == pytest.approx((1 + base_assumptions.wacc) ** -(i + 1))
        assert row.present_value == pytest.approx(row.free_cash_flow * row.discount_factor)


def test_free_cash_flow_identity(base_assumptions):
    for row in _project(base_assumptions):
        expected = row.nopat + row.depreciation - row.capex - row.working_capital_change
        assert row.free_cash_flow == pytest.approx(expected, rel=0.05)
        assert row.tax == pytest.approx(max(row.ebit, 0) * base_assumptions.tax_rate)


def test_working_capital_change_is_first_difference(base_assumptions):
    rows = _project(base_assumptions, base_working_capital=80_000)

    assert rows[0].working_capital_change == pytest.approx(110_000 - 80_000)
    for previous, row in zip(rows, rows[1:]):
        assert row.working_capital_change == pytest.approx(row.working_capital - previous.working_capital)


def test_opening_working_capital_defaults_to_first_year_rate(base_assumptions):
    rows = _project(base_assumptions)

    assert rows[0].working_capital_change == pytest.approx(110_000 - 100_000)


def test_projection_is_idempotent(base_assumptions):
    assert _project(base_assumptions) == _project(base_assumptions)


def test_loss_making_company_pays_no_tax():
    assumptions = ScenarioAssumptions(
        revenue_growth=0.05,
        ebitda_margin=[-0.15, -0.10, -0.05, -0.01, -0.01],
        terminal_growth=0.02,
        wacc=0.12,
    )
    rows = _project(assumptions)

    assert all(row.ebit <= 0 for row in rows)
    assert all(row.tax == 0 for row in rows)
    assert all(row.nopat == row.ebit for row in rows)


def test_growth_and_margin_are_clamped():
    assumptions = ScenarioAssumptions(revenue_growth=3.0, ebitda_margin=0.9, terminal_growth=0.02, wacc=0.1)
    row = _project(assumptions, years=1)[0]

    assert row.revenue_growth == 1.0
    assert row.ebitda_margin == 0.5


def test_short_rate_lists_repeat_last_value():
    assert value_for_year([0.1, 0.08], 4) == 0.08
    assert value_for_year(0.1, 3) == 0.1
    with pytest.raises(ValueError):
        value_for_year([], 0)


def test_empty_rate_list_fails_the_scenario():
    assumptions = ScenarioAssumptions(revenue_growth=[], ebitda_margin=0.2, terminal_growth=0.02, wacc=0.1)

    with pytest.raises(ScenarioCalculationError) as excinfo:
        _project(assumptions)
    assert excinfo.value.field == "revenue_growth"


def test_non_positive_base_revenue_is_rejected(base_assumptions):
    with pytest.raises(ScenarioCalculationError) as excinfo:
        _project(base_assumptions, base_revenue=0)
    assert excinfo.value.field == "base_revenue"


def test_breakeven_path_is_non_decreasing():
    path = [breakeven_margin(-0.3, i, 3) for i in range(3)]

    assert path == pytest.approx([-0.2, -0.1, 0.0])
    assert breakeven_margin(-0.3, 3, 3) is None
    assert breakeven_margin(0.1, 0, 3) is None

    glide = margin_path(-0.3, 0.3, 7)
    assert all(later >= earlier for earlier, later in zip(glide, glide[1:]))


def test_glide_margin_respects_policy_bounds():
    policy = EnginePolicy(margin_cap=0.25)

    assert glide_margin(0.2, 0.6, 9, 10, policy=policy) == 0.25
    assert glide_margin(-0.9, 0.3, 0, 5) >= EnginePolicy().margin_floor
