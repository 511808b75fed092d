from __future__ import annotations

from datetime import date
from enum import Enum
from statistics import fmean
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ValuationMethod(str, Enum):
    BOOK_VALUE = "book_value"
    ASSET_BASED_VALUE = "asset_based_value"
    REVENUE = "revenue"
    EBIT = "ebit"
    EBITDA = "ebitda"
    PE = "pe"


MULTIPLE_METHODS = (ValuationMethod.REVENUE, ValuationMethod.EBIT, ValuationMethod.EBITDA, ValuationMethod.PE)


class MethodBasis(str, Enum):
    BUSINESS_BASED = "business_based"
    NOT_APPLICABLE = "not_applicable"


class MultiplesUsed(BaseModel):
    model_config = ConfigDict(frozen=True)

    revenue: Optional[float] = None
    ebit: Optional[float] = None
    ebitda: Optional[float] = None
    pe: Optional[float] = None

    def for_method(self, method: ValuationMethod) -> Optional[float]:
        return getattr(self, method.value)


class OriginalMethodValues(BaseModel):
    model_config = ConfigDict(frozen=True)

    book_value: Optional[float] = None
    asset_based_value: Optional[float] = None
    equity_value_from_revenue: Optional[float] = None
    equity_value_from_ebit: Optional[float] = None
    equity_value_from_ebitda: Optional[float] = None
    equity_value_from_pe: Optional[float] = None

    def for_method(self, method: ValuationMethod) -> Optional[float]:
        if method in MULTIPLE_METHODS:
            return getattr(self, f"equity_value_from_{method.value}")
        return getattr(self, method.value)


class ValuationRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    low: float
    high: float


def _default_bases() -> Dict[ValuationMethod, MethodBasis]:
    return {method: MethodBasis.BUSINESS_BASED for method in MULTIPLE_METHODS}


class OriginalValuationSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    valuation_id: str
    valuation_date: Optional[date] = None
    average_valuation: float
    valuation_range: ValuationRange
    multiples_used: MultiplesUsed = Field(default_factory=MultiplesUsed)
    revenue: Optional[float] = None
    ebit: Optional[float] = None
    ebitda: Optional[float] = None
    method_bases: Dict[ValuationMethod, MethodBasis] = Field(default_factory=_default_bases)
    original_method_values: Optional[OriginalMethodValues] = None
    methods_used_in_average: List[ValuationMethod] = Field(default_factory=list)

    @classmethod
    def from_valuation_metrics(
        cls,
        valuation_id: str,
        method_values: OriginalMethodValues,
        multiples_used: MultiplesUsed,
        method_bases: Optional[Dict[ValuationMethod, MethodBasis]] = None,
        average_valuation: Optional[float] = None,
        valuation_range: Optional[ValuationRange] = None,
        valuation_date: Optional[date] = None,
        revenue: Optional[float] = None,
        ebit: Optional[float] = None,
        ebitda: Optional[float] = None,
    ) -> "OriginalValuationSnapshot":
        """Freeze which methods entered the average at the time the valuation was made.

        Book and asset-based values qualify whenever they are positive; multiple based
        methods qualify when positive and marked ``business_based``.
        """
        bases = {**_default_bases(), **(method_bases or {})}
        included: List[ValuationMethod] = []
        for method in (ValuationMethod.BOOK_VALUE, ValuationMethod.ASSET_BASED_VALUE):
            if (method_values.for_method(method) or 0.0) > 0:
                included.append(method)
        for method in MULTIPLE_METHODS:
            if (method_values.for_method(method) or 0.0) > 0 and bases[method] == MethodBasis.BUSINESS_BASED:
                included.append(method)

        if average_valuation is None:
            values = [method_values.for_method(m) for m in included]
            average_valuation = fmean(values) if values else max(method_values.book_value or 0.0, 0.0)
        if valuation_range is None:
            valuation_range = ValuationRange(low=average_valuation * 0.8, high=average_valuation * 1.2)

        return cls(
            valuation_id=valuation_id,
            valuation_date=valuation_date,
            average_valuation=average_valuation,
            valuation_range=valuation_range,
            multiples_used=multiples_used,
            revenue=revenue,
            ebit=ebit,
            ebitda=ebitda,
            method_bases=bases,
            original_method_values=method_values,
            methods_used_in_average=included,
        )


class PeriodFinancials(BaseModel):
    revenue: float = 0.0
    ebit: float = 0.0
    ebitda: float = 0.0
    depreciation: Optional[float] = None
    net_income: float = 0.0
    total_assets: float = 0.0
    total_liabilities: float = 0.0
    cash: float = 0.0
    interest_bearing_debt: float = 0.0

    @property
    def net_debt(self) -> float:
        return self.interest_bearing_debt - self.cash

    @property
    def book_value(self) -> float:
        return self.total_assets - self.total_liabilities


class AdjustedValuationResult(BaseModel):
    average_valuation: float
    valuation_range: ValuationRange
    adjusted_multiples: MultiplesUsed
    method_values: Dict[ValuationMethod, float] = Field(default_factory=dict)
    methods_in_average: int = 0
    book_value_fallback: bool = False
    recalculated_from_period: bool = False
