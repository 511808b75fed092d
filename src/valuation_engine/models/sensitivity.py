from __future__ import annotations

from enum import Enum
from typing import List

from pydantic import BaseModel, Field


class SensitivityParameter(str, Enum):
    REVENUE_GROWTH = "revenue_growth"
    EBITDA_MARGIN = "ebitda_margin"
    WACC = "wacc"
    TERMINAL_GROWTH = "terminal_growth"
    CAPEX_PERCENT = "capex_percent"
    WORKING_CAPITAL = "working_capital"


class ParameterSensitivity(BaseModel):
    parameter: SensitivityParameter
    shift: float = Field(..., description="Absolute shift applied to the parameter, e.g. 0.01 for one percentage point")
    value_plus: float
    value_minus: float
    impact_plus: float
    impact_minus: float
    impact_percentage_plus: float
    impact_percentage_minus: float

    @property
    def impact_range(self) -> float:
        return abs(self.value_plus - self.value_minus)


class TornadoBar(BaseModel):
    parameter: SensitivityParameter
    impact_range: float
    percentage_impact: float


class SensitivityAnalysis(BaseModel):
    base_case_equity_value: float
    sensitivities: List[ParameterSensitivity]
    tornado: List[TornadoBar]
    most_sensitive_parameters: List[SensitivityParameter]
    skipped_parameters: List[SensitivityParameter] = Field(
        default_factory=list, description="Parameters whose shifted run could not be computed"
    )
