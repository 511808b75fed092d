from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, confloat


class CompanyStage(str, Enum):
    PRE_REVENUE = "pre_revenue"
    EARLY_STAGE = "early_stage"
    GROWTH = "growth"


class BaseDCFInputs(BaseModel):
    company_name: str = ""
    base_year: Optional[int] = None
    projection_years: Optional[int] = Field(default=None, description="Overrides the variant's default horizon")
    net_debt: float = 0.0
    tax_rate: float = 0.25
    valuation_date: Optional[date] = None


class HistoricalData(BaseModel):
    revenue: List[float]
    ebitda: List[float] = Field(default_factory=list)
    capex: List[float] = Field(default_factory=list)
    working_capital_change: List[float] = Field(default_factory=list)
    periods: Optional[int] = Field(default=None, description="Number of historical years supplied")


class MarketData(BaseModel):
    wacc: float
    terminal_growth: Optional[float] = None
    industry_beta: Optional[float] = None


class FullDCFInputs(BaseDCFInputs):
    variant: Literal["full_dcf"] = "full_dcf"
    historical_data: HistoricalData
    market_data: MarketData


class LimitedHistoricalData(BaseModel):
    revenue: List[float]
    ebitda: Optional[List[float]] = None
    periods: Optional[int] = None


class BenchmarkData(BaseModel):
    industry: Optional[str] = None
    industry_growth_rate: float
    industry_ebitda_margin: float
    industry_capex_percent: float
    industry_wacc: float
    benchmark_weight: confloat(ge=0, le=1) = Field(1.0, description="Weight given to industry figures over company history")


class SimplifiedDCFInputs(BaseDCFInputs):
    variant: Literal["simplified_dcf"] = "simplified_dcf"
    limited_historical_data: LimitedHistoricalData
    benchmark_data: BenchmarkData


class StartupMetrics(BaseModel):
    company_stage: CompanyStage = CompanyStage.EARLY_STAGE
    current_revenue: Optional[float] = Field(default=None, description="Initial revenue estimate")
    burn_rate: Optional[float] = None
    runway_months: Optional[float] = None
    customer_acquisition_rate: Optional[float] = None
    revenue_per_customer: Optional[float] = None


class MarketAnalysis(BaseModel):
    total_addressable_market: float
    serviceable_addressable_market: float
    target_market_share: List[float] = Field(default_factory=list)


class VentureAdjustments(BaseModel):
    failure_probability: confloat(ge=0, le=1) = 0.0
    risk_adjusted_wacc: float


class ForwardLookingDCFInputs(BaseDCFInputs):
    variant: Literal["forward_looking_dcf"] = "forward_looking_dcf"
    startup_metrics: StartupMetrics
    market_analysis: MarketAnalysis
    venture_adjustments: VentureAdjustments


DCFInputs = Annotated[
    Union[FullDCFInputs, SimplifiedDCFInputs, ForwardLookingDCFInputs],
    Field(discriminator="variant"),
]
