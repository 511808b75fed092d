from __future__ import annotations

import logging
from datetime import date
from typing import Any, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from ..models.assumptions import ScenarioAssumptions
from ..models.common import SCENARIO_ORDER, ScenarioType
from ..models.validation import InputIssue, InputValidationResult, Severity
from ..models.variants import ForwardLookingDCFInputs, FullDCFInputs, SimplifiedDCFInputs
from .assumptions import historical_cagr, parse_dcf_inputs

logger = logging.getLogger(__name__)

MAX_GROWTH_RATE = 2.0
MIN_GROWTH_RATE = -0.5
HIGH_GROWTH_RATE = 0.5
MAX_MARGIN = 0.5
MIN_MARGIN = -0.5
HIGH_MARGIN = 0.35
MAX_WACC = 0.30
MIN_WACC = 0.02
MAX_TERMINAL_GROWTH = 0.05
MIN_TERMINAL_GROWTH = -0.02
HIGH_TERMINAL_GROWTH = 0.035
MAX_TAX_RATE = 0.5
LOW_TAX_RATE = 0.15


def _pct(value: float) -> str:
    return f"{value * 100:.1f}%"


class _Issues:
    def __init__(self) -> None:
        self.items: List[InputIssue] = []

    def error(self, field: str, value: Any, message: str, critical: bool = False) -> None:
        severity = Severity.CRITICAL if critical else Severity.ERROR
        self.items.append(InputIssue(field=field, value=value, message=message, severity=severity))

    def warning(self, field: str, value: Any, message: str, suggestion: Optional[str] = None) -> None:
        self.items.append(
            InputIssue(field=field, value=value, message=message, severity=Severity.WARNING, suggestion=suggestion)
        )

    def from_validation_error(self, exc: ValidationError, prefix: str = "") -> None:
        for err in exc.errors():
            loc = ".".join(str(part) for part in err["loc"])
            field = f"{prefix}.{loc}" if prefix and loc else (prefix or loc)
            self.error(field, err.get("input"), err["msg"], critical=True)

    def result(self) -> InputValidationResult:
        blocking = [i for i in self.items if i.is_blocking]
        return InputValidationResult(is_valid=not blocking, issues=self.items, summary=summarize_issues(self.items))


def summarize_issues(issues: Sequence[InputIssue]) -> str:
    if not issues:
        return "Validation passed with no issues"
    critical = sum(1 for i in issues if i.severity == Severity.CRITICAL)
    errors = sum(1 for i in issues if i.severity == Severity.ERROR)
    warnings = sum(1 for i in issues if i.severity == Severity.WARNING)
    parts = []
    if critical:
        parts.append(f"{critical} critical error(s) found.")
    if errors:
        parts.append(f"{errors} error(s) found.")
    if warnings:
        parts.append(f"{warnings} warning(s) found.")
    if critical or errors:
        parts.append("Please fix errors before proceeding.")
    else:
        parts.append("Review warnings and proceed with caution.")
    return " ".join(parts)


def _check_tax_rate(issues: _Issues, rate: float, field: str) -> None:
    if rate < 0 or rate > MAX_TAX_RATE:
        issues.error(field, rate, f"Tax rate {_pct(rate)} must be between 0% and 50%")
    elif rate < LOW_TAX_RATE:
        issues.warning(field, rate, f"Tax rate {_pct(rate)} seems low", "Verify tax rate with local regulations")


def _check_wacc(issues: _Issues, wacc: float, field: str, market_wacc: Optional[float] = None) -> None:
    if wacc > MAX_WACC:
        issues.error(field, wacc, f"WACC {_pct(wacc)} exceeds maximum of {_pct(MAX_WACC)}")
    elif wacc < MIN_WACC:
        issues.error(field, wacc, f"WACC {_pct(wacc)} below minimum of {_pct(MIN_WACC)}")
    if market_wacc:
        deviation = abs(wacc - market_wacc) / market_wacc
        if deviation > 0.3:
            issues.warning(
                field,
                wacc,
                f"WACC {_pct(wacc)} deviates significantly from market WACC {_pct(market_wacc)}",
                "Consider using market-based WACC for consistency",
            )


def _check_terminal_growth(issues: _Issues, rate: float, field: str) -> None:
    if rate > MAX_TERMINAL_GROWTH:
        issues.error(field, rate, f"Terminal growth {_pct(rate)} exceeds maximum of {_pct(MAX_TERMINAL_GROWTH)}")
    elif rate < MIN_TERMINAL_GROWTH:
        issues.warning(
            field,
            rate,
            f"Negative terminal growth {_pct(rate)} implies long-term decline",
            "Consider if long-term decline is realistic",
        )
    elif rate > HIGH_TERMINAL_GROWTH:
        issues.warning(
            field,
            rate,
            f"Terminal growth {_pct(rate)} is above typical GDP growth",
            "Terminal growth typically should not exceed long-term GDP growth (2-3%)",
        )


def _as_list(rate) -> List[float]:
    return list(rate) if isinstance(rate, (list, tuple)) else [rate]


def _check_growth_rates(issues: _Issues, rates: Sequence[float], field: str) -> None:
    for i, rate in enumerate(rates):
        item = f"{field}[{i}]"
        if rate > MAX_GROWTH_RATE:
            issues.error(item, rate, f"Growth rate {_pct(rate)} exceeds maximum of {_pct(MAX_GROWTH_RATE)}")
        elif rate < MIN_GROWTH_RATE:
            issues.error(item, rate, f"Growth rate {_pct(rate)} below minimum of {_pct(MIN_GROWTH_RATE)}")
        elif rate > HIGH_GROWTH_RATE:
            issues.warning(item, rate, f"Growth rate {_pct(rate)} seems very high", "Consider if this growth rate is sustainable")
        if i > 0 and rates[i - 1] > 0 and rate > rates[i - 1] * 1.2:
            issues.warning(
                item,
                rate,
                f"Growth rate increases significantly from year {i} to {i + 1}",
                "Growth rates typically decline over time",
            )


def _check_margins(issues: _Issues, margins: Sequence[float], field: str) -> None:
    for i, margin in enumerate(margins):
        item = f"{field}[{i}]"
        if margin > MAX_MARGIN:
            issues.error(item, margin, f"Margin {_pct(margin)} exceeds maximum of {_pct(MAX_MARGIN)}")
        elif margin < MIN_MARGIN:
            issues.warning(item, margin, f"Negative margin {_pct(margin)} indicates losses", "Ensure path to profitability is realistic")
        elif margin > HIGH_MARGIN:
            issues.warning(
                item,
                margin,
                f"Margin {_pct(margin)} is very high",
                "Verify margin sustainability with industry benchmarks",
            )


def validate_assumption_set(
    assumptions: Mapping[Any, Union[ScenarioAssumptions, Mapping[str, Any]]],
    market_wacc: Optional[float] = None,
) -> InputValidationResult:
    """Check per-scenario assumptions before they are run."""
    issues = _Issues()
    parsed = {}
    for scenario in SCENARIO_ORDER:
        raw = assumptions.get(scenario)
        if raw is None:
            issues.error(f"scenarios.{scenario.value}", None, f"Missing {scenario.value} scenario", critical=True)
            continue
        try:
            parsed[scenario] = raw if isinstance(raw, ScenarioAssumptions) else ScenarioAssumptions.model_validate(raw)
        except ValidationError as exc:
            issues.from_validation_error(exc, prefix=scenario.value)
            continue

        item = parsed[scenario]
        prefix = scenario.value
        _check_growth_rates(issues, _as_list(item.revenue_growth), f"{prefix}.revenue_growth")
        _check_margins(issues, _as_list(item.ebitda_margin), f"{prefix}.ebitda_margin")
        _check_wacc(issues, item.wacc, f"{prefix}.wacc", market_wacc)
        if item.terminal_growth >= item.wacc:
            issues.error(
                f"{prefix}.terminal_growth",
                item.terminal_growth,
                f"Terminal growth rate ({_pct(item.terminal_growth)}) must be less than WACC ({_pct(item.wacc)})",
            )
        _check_terminal_growth(issues, item.terminal_growth, f"{prefix}.terminal_growth")
        _check_tax_rate(issues, item.tax_rate, f"{prefix}.tax_rate")

    pessimistic = parsed.get(ScenarioType.PESSIMISTIC)
    base = parsed.get(ScenarioType.BASE)
    optimistic = parsed.get(ScenarioType.OPTIMISTIC)
    if pessimistic and base and pessimistic.wacc < base.wacc:
        issues.warning(
            "scenario.consistency",
            {"pessimistic": pessimistic.wacc, "base": base.wacc},
            "Pessimistic WACC should typically be higher than base",
            "Higher WACC reflects higher risk in the pessimistic scenario",
        )
    if optimistic and base and optimistic.terminal_growth < base.terminal_growth:
        issues.warning(
            "scenario.consistency",
            {"optimistic": optimistic.terminal_growth, "base": base.terminal_growth},
            "Optimistic terminal growth should be higher than base",
            "Ensure scenario assumptions are internally consistent",
        )

    result = issues.result()
    logger.info("Assumption validation: %s", result.summary)
    return result


def validate_dcf_inputs(inputs, today: Optional[date] = None) -> InputValidationResult:
    """Check variant inputs before assumptions are derived from them."""
    issues = _Issues()
    try:
        inputs = parse_dcf_inputs(inputs)
    except ValidationError as exc:
        issues.from_validation_error(exc)
        result = issues.result()
        logger.warning("DCF inputs rejected: %s", result.summary)
        return result

    today = today or date.today()
    if not inputs.company_name.strip():
        issues.error("company_name", inputs.company_name, "Company name is required")
    if inputs.base_year is not None and not (today.year - 5 <= inputs.base_year <= today.year + 1):
        issues.warning(
            "base_year",
            inputs.base_year,
            f"Base year {inputs.base_year} seems unusual",
            f"Consider using current year {today.year}",
        )
    if inputs.projection_years is not None and not (3 <= inputs.projection_years <= 10):
        issues.warning(
            "projection_years",
            inputs.projection_years,
            f"Projection period {inputs.projection_years} years is unusual",
            "Typical DCF uses 5-7 year projections",
        )
    if inputs.net_debt < 0:
        issues.warning(
            "net_debt",
            inputs.net_debt,
            "Negative net debt indicates net cash position",
            "Verify cash and debt amounts are correct",
        )
    _check_tax_rate(issues, inputs.tax_rate, "tax_rate")

    if isinstance(inputs, FullDCFInputs):
        _check_full(issues, inputs)
    elif isinstance(inputs, SimplifiedDCFInputs):
        _check_simplified(issues, inputs)
    elif isinstance(inputs, ForwardLookingDCFInputs):
        _check_forward_looking(issues, inputs)

    result = issues.result()
    logger.info("%s input validation: %s", inputs.variant, result.summary)
    return result


def _check_full(issues: _Issues, inputs: FullDCFInputs) -> None:
    history = inputs.historical_data
    if history.periods is not None and len(history.revenue) != history.periods:
        issues.error(
            "historical_data.revenue",
            history.revenue,
            f"Revenue array length {len(history.revenue)} doesn't match periods {history.periods}",
        )
    cagr = historical_cagr(history.revenue)
    if cagr is not None and cagr < -0.2:
        issues.warning(
            "historical_data.revenue",
            cagr,
            f"Historical revenue declining at {_pct(cagr)} CAGR",
            "Ensure turnaround assumptions are realistic",
        )
    _check_wacc(issues, inputs.market_data.wacc, "market_data.wacc")
    if inputs.market_data.terminal_growth is not None:
        _check_terminal_growth(issues, inputs.market_data.terminal_growth, "market_data.terminal_growth")


def _check_simplified(issues: _Issues, inputs: SimplifiedDCFInputs) -> None:
    if not inputs.limited_historical_data.revenue:
        issues.error("limited_historical_data.revenue", [], "At least one year of revenue is required", critical=True)
    weight = inputs.benchmark_data.benchmark_weight
    if weight > 0.8:
        issues.warning(
            "benchmark_data.benchmark_weight",
            weight,
            "High reliance on benchmarks",
            "Consider if company-specific adjustments are needed",
        )
    _check_wacc(issues, inputs.benchmark_data.industry_wacc, "benchmark_data.industry_wacc")


def _check_forward_looking(issues: _Issues, inputs: ForwardLookingDCFInputs) -> None:
    metrics = inputs.startup_metrics
    if metrics.burn_rate and metrics.runway_months is not None and metrics.runway_months < 12:
        issues.warning(
            "startup_metrics.runway_months",
            metrics.runway_months,
            "Less than 12 months runway",
            "Consider funding risk in valuation",
        )
    market = inputs.market_analysis
    if market.serviceable_addressable_market > market.total_addressable_market:
        issues.error("market_analysis", market.model_dump(), "SAM cannot exceed TAM")
    if market.target_market_share and market.target_market_share[-1] > 0.2:
        final_share = market.target_market_share[-1]
        issues.warning(
            "market_analysis.target_market_share",
            final_share,
            f"Target market share {_pct(final_share)} seems aggressive",
            "Consider competitive dynamics and barriers to entry",
        )
    if inputs.venture_adjustments.failure_probability > 0.5:
        issues.warning(
            "venture_adjustments.failure_probability",
            inputs.venture_adjustments.failure_probability,
            "High failure probability significantly impacts valuation",
            "Consider using probability-weighted scenarios",
        )
