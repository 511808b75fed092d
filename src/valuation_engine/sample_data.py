from __future__ import annotations

from datetime import date
from typing import Dict, Optional

from .models.assumptions import BaselineFinancials, ScenarioAssumptions, VariantConfig
from .models.common import SCENARIO_ORDER, ScenarioType, scenario_pick
from .models.readiness import CategoryAssessment, ReadinessCategory, SalesReadinessAnalysis, ValueImpact
from .models.valuation import MultiplesUsed, OriginalMethodValues, OriginalValuationSnapshot, PeriodFinancials
from .models.variants import (
    BenchmarkData,
    CompanyStage,
    ForwardLookingDCFInputs,
    FullDCFInputs,
    HistoricalData,
    LimitedHistoricalData,
    MarketAnalysis,
    MarketData,
    SimplifiedDCFInputs,
    StartupMetrics,
    VentureAdjustments,
)

SAMPLE_VALUATION_DATE = date(2024, 12, 31)


def build_sample_assumptions(uniform: bool = True) -> Dict[ScenarioType, ScenarioAssumptions]:
    """Three scenarios around 10% growth and a 20% EBITDA margin.

    With ``uniform`` every scenario carries the base case, which keeps year one at
    1,100,000 revenue and 220,000 EBITDA for a 1,000,000 baseline.
    """
    assumptions = {}
    for scenario in SCENARIO_ORDER:
        spread = 0.0 if uniform else scenario_pick(scenario, -0.03, 0.0, 0.03)
        assumptions[scenario] = ScenarioAssumptions(
            revenue_growth=[0.10 + spread] * 5,
            ebitda_margin=0.20 + spread,
            capex_percent=0.05,
            working_capital_percent=0.10,
            terminal_growth=0.03,
            wacc=0.10 - spread / 3,
            tax_rate=0.25,
        )
    return assumptions


def build_sample_baseline(working_capital: Optional[float] = None) -> BaselineFinancials:
    return BaselineFinancials(
        revenue=1_000_000,
        working_capital=working_capital,
        net_debt=150_000,
        valuation_date=SAMPLE_VALUATION_DATE,
    )


def build_sample_config() -> VariantConfig:
    return VariantConfig(projection_years=5)


def build_sample_full_inputs() -> FullDCFInputs:
    return FullDCFInputs(
        company_name="Nordic Tools Oy",
        base_year=2024,
        net_debt=400_000,
        tax_rate=0.20,
        valuation_date=SAMPLE_VALUATION_DATE,
        historical_data=HistoricalData(
            revenue=[3_200_000, 3_600_000, 4_000_000],
            ebitda=[420_000, 500_000, 600_000],
            capex=[90_000, 100_000, 120_000],
            working_capital_change=[20_000, 30_000, 25_000],
            periods=3,
        ),
        market_data=MarketData(wacc=0.10),
    )


def build_sample_simplified_inputs() -> SimplifiedDCFInputs:
    return SimplifiedDCFInputs(
        company_name="Cloud Ledger Oy",
        base_year=2024,
        tax_rate=0.20,
        valuation_date=SAMPLE_VALUATION_DATE,
        limited_historical_data=LimitedHistoricalData(revenue=[800_000, 1_000_000], ebitda=[80_000, 120_000], periods=2),
        benchmark_data=BenchmarkData(
            industry="SaaS software",
            industry_growth_rate=0.15,
            industry_ebitda_margin=0.20,
            industry_capex_percent=0.04,
            industry_wacc=0.11,
            benchmark_weight=0.6,
        ),
    )


def build_sample_forward_inputs() -> ForwardLookingDCFInputs:
    return ForwardLookingDCFInputs(
        company_name="Seedling Labs",
        base_year=2024,
        net_debt=-250_000,
        tax_rate=0.20,
        valuation_date=SAMPLE_VALUATION_DATE,
        startup_metrics=StartupMetrics(
            company_stage=CompanyStage.EARLY_STAGE,
            current_revenue=300_000,
            burn_rate=40_000,
            runway_months=18,
        ),
        market_analysis=MarketAnalysis(
            total_addressable_market=500_000_000,
            serviceable_addressable_market=50_000_000,
            target_market_share=[0.001, 0.002, 0.004],
        ),
        venture_adjustments=VentureAdjustments(failure_probability=0.4, risk_adjusted_wacc=0.25),
    )


def build_sample_snapshot() -> OriginalValuationSnapshot:
    return OriginalValuationSnapshot.from_valuation_metrics(
        valuation_id="val-2024-001",
        method_values=OriginalMethodValues(
            book_value=600_000,
            asset_based_value=150_000,
            equity_value_from_revenue=2_000_000,
            equity_value_from_ebit=1_600_000,
            equity_value_from_ebitda=1_800_000,
            equity_value_from_pe=1_500_000,
        ),
        multiples_used=MultiplesUsed(revenue=0.5, ebit=6.0, ebitda=4.5, pe=10.0),
        valuation_date=SAMPLE_VALUATION_DATE,
        revenue=4_000_000,
        ebit=300_000,
        ebitda=400_000,
    )


def build_sample_period() -> PeriodFinancials:
    return PeriodFinancials(
        revenue=4_000_000,
        ebit=300_000,
        ebitda=400_000,
        net_income=150_000,
        total_assets=1_500_000,
        total_liabilities=900_000,
        cash=250_000,
        interest_bearing_debt=400_000,
    )


READINESS_WEIGHTS = {
    ReadinessCategory.CUSTOMER_CONCENTRATION: 0.20,
    ReadinessCategory.KEY_PERSON_DEPENDENCY: 0.15,
    ReadinessCategory.CONTRACT_STRUCTURE: 0.10,
    ReadinessCategory.FINANCIAL: 0.15,
    ReadinessCategory.LEGAL: 0.10,
    ReadinessCategory.OPERATIONAL: 0.10,
    ReadinessCategory.STRATEGIC: 0.10,
    ReadinessCategory.DOCUMENTATION: 0.10,
}


def build_sample_readiness(impacts: Optional[Dict[ReadinessCategory, float]] = None) -> SalesReadinessAnalysis:
    if impacts is None:
        impacts = {
            ReadinessCategory.CUSTOMER_CONCENTRATION: -10.0,
            ReadinessCategory.KEY_PERSON_DEPENDENCY: -5.0,
            ReadinessCategory.CONTRACT_STRUCTURE: 5.0,
            ReadinessCategory.FINANCIAL: 0.0,
            ReadinessCategory.LEGAL: -2.0,
            ReadinessCategory.OPERATIONAL: 3.0,
            ReadinessCategory.STRATEGIC: 4.0,
            ReadinessCategory.DOCUMENTATION: -4.0,
        }
    return SalesReadinessAnalysis(
        analysis_date=SAMPLE_VALUATION_DATE,
        assessments={
            category: CategoryAssessment(score=5, value_impact=ValueImpact(impact_percent=impact))
            for category, impact in impacts.items()
        },
        category_weights=dict(READINESS_WEIGHTS),
    )
