from __future__ import annotations

import logging
from typing import Any, List, Mapping, Union

from pydantic import ValidationError

from ..config import DEFAULT_POLICY, EnginePolicy
from ..models.common import value_for_year
from ..models.results import DCFScenarioResult
from ..models.validation import ValidationReport
from .projector import clamp

logger = logging.getLogger(__name__)

MIN_WACC = 0.03
MAX_WACC = 0.30
MIN_TERMINAL_GROWTH = -0.02
MAX_TERMINAL_GROWTH = 0.06
MIN_GROWTH = -0.50
MAX_GROWTH = 2.00
MIN_MARGIN = -0.50
MAX_MARGIN = 0.80
MAX_TAX_RATE = 0.50

REVENUE_TOLERANCE = 0.05
EBITDA_TOLERANCE = 0.05
TERMINAL_VALUE_TOLERANCE = 0.05
DISCOUNT_FACTOR_TOLERANCE = 0.01
BRIDGE_TOLERANCE = 0.01
NOPAT_TOLERANCE = 0.02
FCF_TOLERANCE = 0.05
PV_TOLERANCE = 0.01

MAX_EV_REVENUE = 20.0
MIN_EV_REVENUE = 0.5
MAX_FCF_MARGIN = 0.40
MIN_FCF_MARGIN = -0.20

_EPSILON = 1e-9


def _mismatch(expected: float, actual: float, tolerance: float) -> bool:
    scale = max(abs(expected), abs(actual))
    if scale < _EPSILON:
        return False
    return abs(expected - actual) / scale > tolerance


def _pct(value: float) -> str:
    return f"{value * 100:.1f}%"


def _rates(rate) -> List[float]:
    return list(rate) if isinstance(rate, list) else [rate]


class DCFValidator:
    """Recomputes each formula of a finished scenario and reports disagreements.

    The validator only reads its input. Errors mark arithmetic that does not
    reconcile; warnings mark figures that reconcile but look implausible.
    """

    def __init__(self, policy: EnginePolicy = DEFAULT_POLICY):
        self.policy = policy

    def validate_scenario(self, scenario: Union[DCFScenarioResult, Mapping[str, Any]]) -> ValidationReport:
        report = ValidationReport()
        try:
            if not isinstance(scenario, DCFScenarioResult):
                scenario = DCFScenarioResult.model_validate(scenario)
            self._check_assumptions(scenario, report)
            self._check_projections(scenario, report)
            self._check_terminal_value(scenario, report)
            self._check_bridge(scenario, report)
            self._check_cash_flows(scenario, report)
            self._check_market_reasonableness(scenario, report)
            self._add_info(scenario, report)
        except ValidationError as exc:
            report.errors.append(f"Scenario result could not be read: {exc.error_count()} invalid field(s)")
        except (ArithmeticError, TypeError, ValueError) as exc:
            logger.exception("Validator failed while checking scenario")
            report.errors.append(f"Validation aborted: {exc}")
        report.is_valid = not report.errors
        return report

    def _check_assumptions(self, scenario: DCFScenarioResult, report: ValidationReport) -> None:
        a = scenario.assumptions
        if a.wacc < MIN_WACC or a.wacc > MAX_WACC:
            report.errors.append(f"WACC {_pct(a.wacc)} is unrealistic (should be 3-30%)")
        if a.terminal_growth < MIN_TERMINAL_GROWTH or a.terminal_growth > MAX_TERMINAL_GROWTH:
            report.errors.append(f"Terminal growth {_pct(a.terminal_growth)} is unrealistic (should be -2% to 6%)")
        if a.terminal_growth >= a.wacc:
            report.errors.append(
                f"Terminal growth ({_pct(a.terminal_growth)}) must be below WACC ({_pct(a.wacc)})"
            )
        for i, growth in enumerate(_rates(a.revenue_growth)):
            if growth < MIN_GROWTH or growth > MAX_GROWTH:
                report.warnings.append(f"Year {i + 1} revenue growth {_pct(growth)} seems extreme")
        for i, margin in enumerate(_rates(a.ebitda_margin)):
            if margin < MIN_MARGIN or margin > MAX_MARGIN:
                report.warnings.append(f"Year {i + 1} EBITDA margin {_pct(margin)} seems extreme")
        if a.tax_rate < 0 or a.tax_rate > MAX_TAX_RATE:
            report.warnings.append(f"Tax rate {_pct(a.tax_rate)} seems unusual")

    def _check_projections(self, scenario: DCFScenarioResult, report: ValidationReport) -> None:
        if not scenario.projections:
            report.warnings.append("No projections provided for calculation validation")
            return
        a = scenario.assumptions
        previous_revenue = scenario.base_revenue
        for i, row in enumerate(scenario.projections):
            growth = clamp(value_for_year(a.revenue_growth, i), self.policy.growth_floor, self.policy.growth_cap)
            expected_revenue = previous_revenue * (1 + growth)
            if _mismatch(expected_revenue, row.revenue, REVENUE_TOLERANCE):
                report.errors.append(
                    f"Year {i + 1} revenue calculation error: expected {expected_revenue:.0f}, got {row.revenue:.0f}"
                )
            margin = clamp(value_for_year(a.ebitda_margin, i), self.policy.margin_floor, self.policy.margin_cap)
            expected_ebitda = row.revenue * margin
            if _mismatch(expected_ebitda, row.ebitda, EBITDA_TOLERANCE):
                report.errors.append(
                    f"Year {i + 1} EBITDA calculation error: expected {expected_ebitda:.0f}, got {row.ebitda:.0f}"
                )
            expected_df = (1 + a.wacc) ** -(i + 1)
            if _mismatch(expected_df, row.discount_factor, DISCOUNT_FACTOR_TOLERANCE):
                report.errors.append(
                    f"Year {i + 1} discount factor error: expected {expected_df:.4f}, got {row.discount_factor:.4f}"
                )
            previous_revenue = row.revenue

    def _check_terminal_value(self, scenario: DCFScenarioResult, report: ValidationReport) -> None:
        tv = scenario.terminal_value
        if tv.terminal_growth_rate >= tv.wacc:
            report.errors.append("Terminal value uses a growth rate at or above WACC")
            return
        expected = tv.terminal_fcf * (1 + tv.terminal_growth_rate) / (tv.wacc - tv.terminal_growth_rate)
        if _mismatch(expected, tv.terminal_value, TERMINAL_VALUE_TOLERANCE):
            report.errors.append(
                f"Terminal value calculation error: expected {expected:.0f}, got {tv.terminal_value:.0f}"
            )

    def _check_bridge(self, scenario: DCFScenarioResult, report: ValidationReport) -> None:
        bridge = scenario.bridge
        expected_ev = bridge.sum_pv_fcf + bridge.terminal_pv
        if _mismatch(expected_ev, bridge.enterprise_value, BRIDGE_TOLERANCE):
            report.errors.append(
                f"Enterprise value calculation error: {expected_ev:.0f} (calculated) != "
                f"{bridge.enterprise_value:.0f} (stated)"
            )
        expected_discount = bridge.enterprise_value * bridge.marketability_discount_rate
        if _mismatch(expected_discount, bridge.marketability_discount, BRIDGE_TOLERANCE):
            report.errors.append(
                f"Marketability discount error: {expected_discount:.0f} (calculated) != "
                f"{bridge.marketability_discount:.0f} (stated)"
            )
        expected_equity = bridge.enterprise_value - bridge.net_debt
        if _mismatch(expected_equity, bridge.equity_value, BRIDGE_TOLERANCE):
            report.errors.append(
                f"Equity value calculation error: {expected_equity:.0f} (EV - net debt) != "
                f"{bridge.equity_value:.0f} (stated)"
            )

    def _check_cash_flows(self, scenario: DCFScenarioResult, report: ValidationReport) -> None:
        tax_rate = scenario.assumptions.tax_rate
        for row in scenario.projections:
            expected_nopat = row.ebit - max(row.ebit, 0.0) * tax_rate
            if _mismatch(expected_nopat, row.nopat, NOPAT_TOLERANCE):
                report.errors.append(
                    f"Year {row.year} NOPAT calculation error: {expected_nopat:.0f} (expected) vs {row.nopat:.0f} (actual)"
                )
            expected_fcf = row.nopat + row.depreciation - row.capex - row.working_capital_change
            if _mismatch(expected_fcf, row.free_cash_flow, FCF_TOLERANCE):
                report.warnings.append(
                    f"Year {row.year} FCF calculation variance: {expected_fcf:.0f} (calculated) vs "
                    f"{row.free_cash_flow:.0f} (stated)"
                )
            expected_pv = row.free_cash_flow * row.discount_factor
            if _mismatch(expected_pv, row.present_value, PV_TOLERANCE):
                report.errors.append(
                    f"Year {row.year} PV calculation error: FCF {row.free_cash_flow:.0f} x DF "
                    f"{row.discount_factor:.4f} = {expected_pv:.0f} != {row.present_value:.0f}"
                )

    def _check_market_reasonableness(self, scenario: DCFScenarioResult, report: ValidationReport) -> None:
        if not scenario.projections:
            return
        final_revenue = scenario.projections[-1].revenue
        enterprise_value = scenario.bridge.enterprise_value
        if final_revenue and enterprise_value:
            multiple = enterprise_value / final_revenue
            if multiple > MAX_EV_REVENUE:
                report.warnings.append(f"EV/Revenue multiple of {multiple:.1f}x seems very high")
            if multiple < MIN_EV_REVENUE:
                report.warnings.append(f"EV/Revenue multiple of {multiple:.1f}x seems very low")

        margins = [row.free_cash_flow / row.revenue for row in scenario.projections if row.revenue]
        if margins:
            average = sum(margins) / len(margins)
            if average > MAX_FCF_MARGIN:
                report.warnings.append(f"Average FCF margin of {_pct(average)} seems very high")
            if average < MIN_FCF_MARGIN:
                report.warnings.append(f"Average FCF margin of {_pct(average)} indicates persistent negative cash flow")

    def _add_info(self, scenario: DCFScenarioResult, report: ValidationReport) -> None:
        tv = scenario.terminal_value
        if tv.growth_adjusted:
            report.info.append(
                f"Terminal growth clamped from {_pct(tv.requested_growth_rate)} to {_pct(tv.terminal_growth_rate)}"
            )
        if tv.fcf_normalized:
            report.info.append(
                f"Negative terminal FCF {tv.raw_terminal_fcf:.0f} normalized to {tv.terminal_fcf:.0f}"
            )
        if scenario.bridge.marketability_discount_rate:
            report.info.append(
                f"Marketability discount of {scenario.bridge.marketability_discount_rate * 100:.0f}% applied"
            )


def independent_dcf(scenario: DCFScenarioResult) -> float:
    """Enterprise value recomputed from the stated cash flows, before any marketability discount."""
    if not scenario.projections:
        raise ValueError("Missing projected cash flows for DCF calculation")
    wacc = scenario.assumptions.wacc
    growth = scenario.assumptions.terminal_growth
    if wacc is None or growth is None:
        raise ValueError("Missing WACC or terminal growth rate for DCF calculation")
    if growth >= wacc:
        raise ValueError("Terminal growth rate must be below WACC")

    cash_flows = [row.free_cash_flow for row in scenario.projections]
    pv_fcf = sum(fcf * (1 + wacc) ** -(i + 1) for i, fcf in enumerate(cash_flows))
    terminal_value = cash_flows[-1] * (1 + growth) / (wacc - growth)
    terminal_pv = terminal_value * (1 + wacc) ** -len(cash_flows)
    return pv_fcf + terminal_pv


def validate_scenario(scenario: Union[DCFScenarioResult, Mapping[str, Any]], policy: EnginePolicy = DEFAULT_POLICY) -> ValidationReport:
    return DCFValidator(policy).validate_scenario(scenario)


def format_validation_results(report: ValidationReport) -> str:
    lines = [f"DCF Validation: {'PASSED' if report.is_valid else 'FAILED'}"]
    if report.errors:
        lines.append("")
        lines.append("ERRORS:")
        lines.extend(f"- {e}" for e in report.errors)
    if report.warnings:
        lines.append("")
        lines.append("WARNINGS:")
        lines.extend(f"- {w}" for w in report.warnings)
    if report.info:
        lines.append("")
        lines.append("INFO:")
        lines.extend(f"- {i}" for i in report.info)
    return "\n".join(lines)
