from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, conint


class ReadinessCategory(str, Enum):
    CUSTOMER_CONCENTRATION = "customer_concentration"
    KEY_PERSON_DEPENDENCY = "key_person_dependency"
    CONTRACT_STRUCTURE = "contract_structure"
    FINANCIAL = "financial"
    LEGAL = "legal"
    OPERATIONAL = "operational"
    STRATEGIC = "strategic"
    DOCUMENTATION = "documentation"


class ValueImpact(BaseModel):
    impact_percent: float = Field(..., description="Effect on valuation multiples, e.g. -10 for a 10% haircut")
    rationale: Optional[str] = None


class CategoryAssessment(BaseModel):
    score: Optional[conint(ge=1, le=10)] = None
    value_impact: Optional[ValueImpact] = None


class SalesReadinessAnalysis(BaseModel):
    analysis_date: Optional[date] = None
    assessments: Dict[ReadinessCategory, CategoryAssessment] = Field(default_factory=dict)
    category_weights: Dict[ReadinessCategory, float] = Field(default_factory=dict)

    def impact_for(self, category: ReadinessCategory) -> Optional[float]:
        assessment = self.assessments.get(category)
        if assessment is None or assessment.value_impact is None:
            return None
        return assessment.value_impact.impact_percent


class AdjustmentFactors(BaseModel):
    customer_concentration_factor: float = 1.0
    key_person_dependency_factor: float = 1.0
    contract_structure_factor: float = 1.0
    financial_factor: float = 1.0
    legal_factor: float = 1.0
    operational_factor: float = 1.0
    strategic_factor: float = 1.0
    documentation_factor: float = 1.0
    overall_factor: float = 1.0
    revenue_multiple_factor: Optional[float] = 1.0
    ebit_multiple_factor: Optional[float] = 1.0
    ebitda_multiple_factor: Optional[float] = 1.0
    pe_multiple_factor: Optional[float] = 1.0

    @classmethod
    def neutral(cls) -> "AdjustmentFactors":
        return cls()

    def category_factor(self, category: ReadinessCategory) -> float:
        return getattr(self, f"{category.value}_factor")
