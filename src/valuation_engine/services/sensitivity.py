from __future__ import annotations

import logging
from datetime import date
from typing import Dict, List, Optional

from ..config import DEFAULT_POLICY, EnginePolicy
from ..exceptions import ScenarioCalculationError
from ..models.assumptions import BaselineFinancials, ScenarioAssumptions, VariantConfig
from ..models.common import AnnualRate, ScenarioType
from ..models.sensitivity import ParameterSensitivity, SensitivityAnalysis, SensitivityParameter, TornadoBar
from .calculator import DCFCalculator

logger = logging.getLogger(__name__)

# Absolute shifts, in rate units.
PARAMETER_SHIFTS: Dict[SensitivityParameter, float] = {
    SensitivityParameter.REVENUE_GROWTH: 0.01,
    SensitivityParameter.EBITDA_MARGIN: 0.01,
    SensitivityParameter.WACC: 0.01,
    SensitivityParameter.TERMINAL_GROWTH: 0.005,
    SensitivityParameter.CAPEX_PERCENT: 0.01,
    SensitivityParameter.WORKING_CAPITAL: 0.01,
}

_ASSUMPTION_FIELDS = {
    SensitivityParameter.REVENUE_GROWTH: "revenue_growth",
    SensitivityParameter.EBITDA_MARGIN: "ebitda_margin",
    SensitivityParameter.WACC: "wacc",
    SensitivityParameter.TERMINAL_GROWTH: "terminal_growth",
    SensitivityParameter.CAPEX_PERCENT: "capex_percent",
    SensitivityParameter.WORKING_CAPITAL: "working_capital_percent",
}

MOST_SENSITIVE_COUNT = 3


def shift_rate(rate: AnnualRate, delta: float) -> AnnualRate:
    if isinstance(rate, list):
        return [value + delta for value in rate]
    return rate + delta


def shifted_assumptions(
    assumptions: ScenarioAssumptions, parameter: SensitivityParameter, delta: float
) -> ScenarioAssumptions:
    field = _ASSUMPTION_FIELDS[parameter]
    return assumptions.model_copy(update={field: shift_rate(getattr(assumptions, field), delta)})


class SensitivityAnalyzer:
    """One-at-a-time sensitivity of the base scenario's equity value."""

    def __init__(self, policy: EnginePolicy = DEFAULT_POLICY):
        self.calculator = DCFCalculator(policy)

    def analyze(
        self,
        assumptions: ScenarioAssumptions,
        baseline: BaselineFinancials,
        config: Optional[VariantConfig] = None,
    ) -> SensitivityAnalysis:
        config = config or VariantConfig()
        base_date = baseline.valuation_date or date.today()
        base_value = self._equity(assumptions, baseline, config, base_date)
        logger.info("Sensitivity base case equity %.0f", base_value)

        sensitivities: List[ParameterSensitivity] = []
        skipped: List[SensitivityParameter] = []
        for parameter, shift in PARAMETER_SHIFTS.items():
            try:
                value_plus = self._equity(shifted_assumptions(assumptions, parameter, shift), baseline, config, base_date)
                value_minus = self._equity(shifted_assumptions(assumptions, parameter, -shift), baseline, config, base_date)
            except (ScenarioCalculationError, ArithmeticError) as exc:
                logger.warning("Skipping %s sensitivity: %s", parameter.value, exc)
                skipped.append(parameter)
                continue
            sensitivities.append(
                ParameterSensitivity(
                    parameter=parameter,
                    shift=shift,
                    value_plus=value_plus,
                    value_minus=value_minus,
                    impact_plus=value_plus - base_value,
                    impact_minus=value_minus - base_value,
                    impact_percentage_plus=self._percent(value_plus - base_value, base_value),
                    impact_percentage_minus=self._percent(value_minus - base_value, base_value),
                )
            )
            logger.debug("%s: +%.0f / %.0f", parameter.value, value_plus - base_value, value_minus - base_value)

        ranked = sorted(sensitivities, key=lambda s: s.impact_range, reverse=True)
        tornado = [
            TornadoBar(
                parameter=s.parameter,
                impact_range=s.impact_range,
                percentage_impact=self._percent(s.impact_range, base_value),
            )
            for s in ranked
        ]
        return SensitivityAnalysis(
            base_case_equity_value=base_value,
            sensitivities=sensitivities,
            tornado=tornado,
            most_sensitive_parameters=[bar.parameter for bar in tornado[:MOST_SENSITIVE_COUNT]],
            skipped_parameters=skipped,
        )

    def _equity(self, assumptions, baseline, config, base_date) -> float:
        result = self.calculator.run_scenario(ScenarioType.BASE, assumptions, baseline, config, base_date)
        return result.bridge.equity_value

    @staticmethod
    def _percent(delta: float, base: float) -> float:
        if base == 0:
            return 0.0
        return delta / abs(base) * 100


def run_sensitivity(
    assumptions: ScenarioAssumptions,
    baseline: BaselineFinancials,
    config: Optional[VariantConfig] = None,
    policy: EnginePolicy = DEFAULT_POLICY,
) -> SensitivityAnalysis:
    return SensitivityAnalyzer(policy).analyze(assumptions, baseline, config)
