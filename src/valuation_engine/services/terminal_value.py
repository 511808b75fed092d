from __future__ import annotations

import logging
import math
from typing import Tuple

from ..config import DEFAULT_POLICY, EnginePolicy
from ..exceptions import ScenarioCalculationError
from ..models.common import ScenarioType
from ..models.results import AnnualProjection, TerminalValueCalculation

logger = logging.getLogger(__name__)


def clamp_terminal_growth(growth: float, wacc: float, policy: EnginePolicy = DEFAULT_POLICY) -> Tuple[float, bool]:
    """Keep terminal growth below WACC; returns the rate to use and whether it changed."""
    if growth >= wacc:
        return wacc - policy.terminal_growth_spread, True
    return growth, False


def normalize_terminal_fcf(final_year: AnnualProjection, growth: float, policy: EnginePolicy = DEFAULT_POLICY) -> Tuple[float, bool]:
    """Replace a negative final-year FCF with NOPAT less maintenance capex and minimal working capital growth."""
    if final_year.free_cash_flow >= 0:
        return final_year.free_cash_flow, False
    normalized = (
        final_year.nopat
        - final_year.revenue * policy.sustainable_capex_rate
        - final_year.revenue * policy.sustainable_wc_rate * growth
    )
    return normalized, True


def compute_terminal_value(
    final_year: AnnualProjection,
    terminal_growth: float,
    wacc: float,
    horizon_years: int,
    scenario: ScenarioType = ScenarioType.BASE,
    policy: EnginePolicy = DEFAULT_POLICY,
) -> TerminalValueCalculation:
    name = scenario.value
    if not math.isfinite(terminal_growth):
        raise ScenarioCalculationError(name, "terminal_growth", f"non-finite value {terminal_growth!r}")

    growth, adjusted = clamp_terminal_growth(terminal_growth, wacc, policy)
    if adjusted:
        logger.warning(
            "%s: terminal growth %.4f is not below WACC %.4f, using %.4f",
            name,
            terminal_growth,
            wacc,
            growth,
            extra={"scenario": name},
        )

    terminal_fcf, normalized = normalize_terminal_fcf(final_year, growth, policy)
    if normalized:
        logger.warning(
            "%s: normalized negative terminal FCF %.0f to %.0f",
            name,
            final_year.free_cash_flow,
            terminal_fcf,
            extra={"scenario": name},
        )

    terminal_value = terminal_fcf * (1 + growth) / (wacc - growth)
    if not math.isfinite(terminal_value):
        raise ScenarioCalculationError(
            name,
            "terminal_value",
            f"non-finite terminal value (fcf={terminal_fcf}, growth={growth}, wacc={wacc})",
        )
    if terminal_value < 0:
        logger.warning("%s: negative terminal value %.0f", name, terminal_value, extra={"scenario": name})

    terminal_pv = terminal_value * (1 + wacc) ** -horizon_years
    return TerminalValueCalculation(
        raw_terminal_fcf=final_year.free_cash_flow,
        terminal_fcf=terminal_fcf,
        fcf_normalized=normalized,
        requested_growth_rate=terminal_growth,
        terminal_growth_rate=growth,
        growth_adjusted=adjusted,
        wacc=wacc,
        terminal_value=terminal_value,
        terminal_pv=terminal_pv,
        horizon_years=horizon_years,
    )
