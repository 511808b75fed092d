from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from .models.assumptions import BaselineFinancials, ScenarioAssumptions, VariantAssumptions, VariantConfig
from .models.common import ScenarioType
from .models.readiness import AdjustmentFactors
from .models.results import DCFCalculationResult, ValuationSummary
from .models.sensitivity import SensitivityAnalysis
from .models.validation import InputValidationResult, ValidationReport
from .models.valuation import AdjustedValuationResult, OriginalValuationSnapshot, PeriodFinancials
from .models.variants import DCFInputs


class DCFRequest(BaseModel):
    assumptions: Dict[ScenarioType, ScenarioAssumptions]
    baseline: BaselineFinancials
    config: Optional[VariantConfig] = None
    validate_results: bool = Field(default=True, description="Audit every computed scenario")
    weights: Optional[Dict[ScenarioType, float]] = Field(default=None, description="Scenario probabilities for the summary")


class DCFResponse(BaseModel):
    result: DCFCalculationResult
    summary: Optional[ValuationSummary] = None
    validation: Dict[ScenarioType, ValidationReport] = Field(default_factory=dict)


class VariantDCFRequest(BaseModel):
    inputs: DCFInputs
    include_sensitivity: bool = False


class VariantDCFResponse(BaseModel):
    input_validation: InputValidationResult
    assumptions: Optional[VariantAssumptions] = None
    result: Optional[DCFCalculationResult] = None
    summary: Optional[ValuationSummary] = None
    sensitivity: Optional[SensitivityAnalysis] = None


class ValidateRequest(BaseModel):
    scenario: Dict[str, Any] = Field(..., description="A scenario result as produced by /dcf")


class ValidateResponse(BaseModel):
    report: ValidationReport
    text: str


class AdjustmentFactorsRequest(BaseModel):
    analysis: Optional[Dict[str, Any]] = Field(default=None, description="Sales readiness analysis; malformed input yields neutral factors")


class ValuationImpactRequest(BaseModel):
    snapshot: OriginalValuationSnapshot
    analysis: Optional[Dict[str, Any]] = None
    factors: Optional[AdjustmentFactors] = Field(default=None, description="Precomputed factors; take precedence over analysis")
    period_data: Optional[PeriodFinancials] = None


class ValuationImpactResponse(BaseModel):
    factors: AdjustmentFactors
    result: AdjustedValuationResult
    original_average: float
    change_percent: float
