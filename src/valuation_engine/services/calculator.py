from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date
from typing import Dict, Mapping, Optional, Sequence

from ..config import DEFAULT_POLICY, EnginePolicy
from ..exceptions import ScenarioCalculationError
from ..models.assumptions import BaselineFinancials, ScenarioAssumptions, VariantConfig
from ..models.common import SCENARIO_ORDER, DCFVariant, ScenarioType
from ..models.results import (
    AnnualProjection,
    DCFCalculationResult,
    DCFScenarioResult,
    ScenarioFailure,
    TerminalValueCalculation,
    ValuationBridge,
)
from .projector import ScenarioProjector
from .terminal_value import compute_terminal_value

logger = logging.getLogger(__name__)


def aggregate_npv(
    projections: Sequence[AnnualProjection],
    terminal: TerminalValueCalculation,
    marketability_discount_rate: float,
    net_debt: float = 0.0,
) -> ValuationBridge:
    sum_pv_fcf = sum(p.present_value for p in projections)
    enterprise_value = sum_pv_fcf + terminal.terminal_pv
    marketability_discount = enterprise_value * marketability_discount_rate
    discounted_enterprise_value = enterprise_value * (1 - marketability_discount_rate)
    return ValuationBridge(
        sum_pv_fcf=sum_pv_fcf,
        terminal_pv=terminal.terminal_pv,
        enterprise_value=enterprise_value,
        marketability_discount_rate=marketability_discount_rate,
        marketability_discount=marketability_discount,
        discounted_enterprise_value=discounted_enterprise_value,
        net_debt=net_debt,
        equity_value=enterprise_value - net_debt,
    )


class DCFCalculator:
    def __init__(self, policy: EnginePolicy = DEFAULT_POLICY, max_workers: int = 1):
        self.policy = policy
        self.max_workers = max(1, max_workers)
        self.projector = ScenarioProjector(policy)

    def run(
        self,
        assumptions_per_scenario: Mapping[ScenarioType, ScenarioAssumptions],
        baseline: BaselineFinancials,
        config: Optional[VariantConfig] = None,
    ) -> DCFCalculationResult:
        config = config or VariantConfig()
        base_date = baseline.valuation_date or date.today()
        logger.info(
            "Running %s for %d scenarios (revenue %.0f)",
            config.variant.value,
            len(SCENARIO_ORDER),
            baseline.revenue,
        )

        outcomes: Dict[ScenarioType, DCFScenarioResult] = {}
        failures: Dict[ScenarioType, ScenarioFailure] = {}
        if self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {
                    executor.submit(self._run_guarded, scenario, assumptions_per_scenario, baseline, config, base_date): scenario
                    for scenario in SCENARIO_ORDER
                }
                for future in as_completed(futures):
                    scenario = futures[future]
                    self._collect(scenario, future.result(), outcomes, failures)
        else:
            for scenario in SCENARIO_ORDER:
                outcome = self._run_guarded(scenario, assumptions_per_scenario, baseline, config, base_date)
                self._collect(scenario, outcome, outcomes, failures)

        scenarios = {s: outcomes[s] for s in SCENARIO_ORDER if s in outcomes}
        return DCFCalculationResult(
            variant=config.variant,
            valuations={s: r.valuation for s, r in scenarios.items()},
            projections={s: r.projections for s, r in scenarios.items()},
            scenarios=scenarios,
            failures={s: failures[s] for s in SCENARIO_ORDER if s in failures},
        )

    def run_scenario(
        self,
        scenario: ScenarioType,
        assumptions: ScenarioAssumptions,
        baseline: BaselineFinancials,
        config: Optional[VariantConfig] = None,
        base_date: Optional[date] = None,
    ) -> DCFScenarioResult:
        config = config or VariantConfig()
        base_date = base_date or baseline.valuation_date or date.today()
        years = self.projection_years(config)
        base_working_capital = self.projector.opening_working_capital(
            scenario, assumptions, baseline.revenue, baseline.working_capital
        )

        projections = self.projector.project(
            scenario,
            assumptions,
            baseline.revenue,
            base_working_capital,
            years,
            base_date,
        )
        terminal = compute_terminal_value(
            projections[-1],
            assumptions.terminal_growth,
            assumptions.wacc,
            len(projections),
            scenario,
            self.policy,
        )
        dlom = self.marketability_discount(config)
        bridge = aggregate_npv(projections, terminal, dlom, baseline.net_debt)
        if not math.isfinite(bridge.enterprise_value):
            raise ScenarioCalculationError(scenario.value, "enterprise_value", f"non-finite value {bridge.enterprise_value!r}")

        logger.info(
            "%s: EV %.0f, after %.0f%% marketability discount %.0f, equity %.0f",
            scenario.value,
            bridge.enterprise_value,
            dlom * 100,
            bridge.discounted_enterprise_value,
            bridge.equity_value,
            extra={"scenario": scenario.value},
        )
        return DCFScenarioResult(
            scenario=scenario,
            variant=config.variant,
            assumptions=assumptions.model_copy(update={"terminal_growth": terminal.terminal_growth_rate}),
            base_revenue=baseline.revenue,
            base_working_capital=base_working_capital,
            projections=projections,
            terminal_value=terminal,
            bridge=bridge,
        )

    def projection_years(self, config: VariantConfig) -> int:
        if config.projection_years:
            return config.projection_years
        if config.is_early_stage:
            return self.policy.early_stage_projection_years
        return self.policy.projection_years

    def marketability_discount(self, config: VariantConfig) -> float:
        if config.marketability_discount is not None:
            return config.marketability_discount
        if config.variant == DCFVariant.FORWARD_LOOKING:
            return self.policy.dlom_early_stage
        return self.policy.dlom_established

    def _run_guarded(
        self,
        scenario: ScenarioType,
        assumptions_per_scenario: Mapping[ScenarioType, ScenarioAssumptions],
        baseline: BaselineFinancials,
        config: VariantConfig,
        base_date: date,
    ):
        try:
            assumptions = assumptions_per_scenario.get(scenario)
            if assumptions is None:
                raise ScenarioCalculationError(scenario.value, "assumptions", "no assumptions supplied")
            return self.run_scenario(scenario, assumptions, baseline, config, base_date)
        except ScenarioCalculationError as exc:
            return exc
        except ArithmeticError as exc:
            return ScenarioCalculationError(scenario.value, "calculation", str(exc))

    @staticmethod
    def _collect(scenario, outcome, outcomes, failures) -> None:
        if isinstance(outcome, ScenarioCalculationError):
            logger.warning("Scenario failed: %s", outcome.message, extra={"scenario": scenario.value})
            failures[scenario] = ScenarioFailure(
                scenario=scenario,
                field=outcome.field,
                message=outcome.reason,
                code=outcome.code,
            )
        else:
            outcomes[scenario] = outcome


def compute_dcf(
    assumptions_per_scenario: Mapping[ScenarioType, ScenarioAssumptions],
    baseline: BaselineFinancials,
    config: Optional[VariantConfig] = None,
    policy: EnginePolicy = DEFAULT_POLICY,
    max_workers: int = 1,
) -> DCFCalculationResult:
    return DCFCalculator(policy, max_workers).run(assumptions_per_scenario, baseline, config)
