from __future__ import annotations

from datetime import date
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, confloat, conint

from .common import AnnualRate, DCFVariant, ScenarioType, value_for_year


class ScenarioAssumptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    revenue_growth: AnnualRate = Field(..., description="Annual revenue growth rates, or one rate for every year")
    ebitda_margin: AnnualRate = Field(..., description="EBITDA margin per year, or one margin for every year")
    capex_percent: AnnualRate = Field(0.03, description="Capital expenditure as a share of revenue")
    working_capital_percent: AnnualRate = Field(0.05, description="Working capital balance as a share of revenue")
    terminal_growth: float
    wacc: float = Field(..., description="Discount rate applied to projected cash flows")
    tax_rate: float = 0.25

    def growth_for(self, year_index: int) -> float:
        return value_for_year(self.revenue_growth, year_index)

    def margin_for(self, year_index: int) -> float:
        return value_for_year(self.ebitda_margin, year_index)

    def capex_for(self, year_index: int) -> float:
        return value_for_year(self.capex_percent, year_index)

    def working_capital_for(self, year_index: int) -> float:
        return value_for_year(self.working_capital_percent, year_index)


class BaselineFinancials(BaseModel):
    revenue: float = Field(..., description="Revenue of the last actual year")
    working_capital: Optional[float] = Field(
        default=None,
        description="Working capital balance of the last actual year; defaults to revenue times the first projected rate",
    )
    net_debt: float = 0.0
    valuation_date: Optional[date] = Field(default=None, description="Base date; projection years follow it")


class VariantConfig(BaseModel):
    variant: DCFVariant = DCFVariant.FULL
    projection_years: Optional[conint(ge=1, le=30)] = None
    marketability_discount: Optional[confloat(ge=0, lt=1)] = Field(
        default=None,
        description="Overrides the variant's discount for lack of marketability",
    )

    @property
    def is_early_stage(self) -> bool:
        return self.variant == DCFVariant.FORWARD_LOOKING


class VariantAssumptions(BaseModel):
    assumptions: Dict[ScenarioType, ScenarioAssumptions]
    baseline: BaselineFinancials
    config: VariantConfig
