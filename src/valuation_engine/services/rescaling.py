from __future__ import annotations

import logging
from statistics import fmean
from typing import Dict, Optional

from ..exceptions import SnapshotError
from ..models.readiness import AdjustmentFactors
from ..models.valuation import (
    MULTIPLE_METHODS,
    AdjustedValuationResult,
    MethodBasis,
    MultiplesUsed,
    OriginalValuationSnapshot,
    PeriodFinancials,
    ValuationMethod,
    ValuationRange,
)

logger = logging.getLogger(__name__)

DEFAULT_LOW_RATIO = 0.8
DEFAULT_HIGH_RATIO = 1.2


def method_factor(factors: AdjustmentFactors, method: ValuationMethod) -> float:
    """Method-specific factor, or the overall factor when the method has none."""
    specific: Optional[float] = getattr(factors, f"{method.value}_multiple_factor")
    return specific if specific else factors.overall_factor


def adjust_multiples(multiples: MultiplesUsed, factors: AdjustmentFactors) -> MultiplesUsed:
    return MultiplesUsed(
        **{m.value: (multiples.for_method(m) or 0.0) * method_factor(factors, m) for m in MULTIPLE_METHODS}
    )


class ValuationRescaler:
    def rescale(
        self,
        snapshot: OriginalValuationSnapshot,
        factors: AdjustmentFactors,
        period_data: Optional[PeriodFinancials] = None,
    ) -> AdjustedValuationResult:
        adjusted = adjust_multiples(snapshot.multiples_used, factors)
        logger.info(
            "Rescaling valuation %s: multiples %s -> %s",
            snapshot.valuation_id,
            snapshot.multiples_used.model_dump(),
            adjusted.model_dump(),
        )

        if snapshot.original_method_values is not None and snapshot.methods_used_in_average:
            method_values, book_value = self._rescale_stored(snapshot, adjusted)
            from_period = False
        else:
            if period_data is None:
                raise SnapshotError(
                    f"Valuation {snapshot.valuation_id} has no method values and no period data to recalculate from"
                )
            logger.info("No stored method values for %s, recalculating from period data", snapshot.valuation_id)
            method_values, book_value = self._recalculate_from_period(snapshot, adjusted, period_data)
            from_period = True

        positives = [v for v in method_values.values() if v > 0]
        book_value_fallback = False
        if positives:
            average = fmean(positives)
            count = len(positives)
        elif book_value is not None and book_value > 0:
            logger.warning("No method produced a positive value, falling back to book value %.0f", book_value)
            average = book_value
            count = 1
            book_value_fallback = True
        else:
            average = 0.0
            count = 0

        # Only positive method values or a positive book value reach the average, so it is never negative.
        valuation_range = self._scaled_range(snapshot, average)
        return AdjustedValuationResult(
            average_valuation=average,
            valuation_range=valuation_range,
            adjusted_multiples=adjusted,
            method_values=method_values,
            methods_in_average=count,
            book_value_fallback=book_value_fallback,
            recalculated_from_period=from_period,
        )

    def _rescale_stored(self, snapshot: OriginalValuationSnapshot, adjusted: MultiplesUsed):
        values = snapshot.original_method_values
        rescaled: Dict[ValuationMethod, float] = {}
        for method in snapshot.methods_used_in_average:
            original_value = values.for_method(method)
            if original_value is None:
                raise SnapshotError(
                    f"Valuation {snapshot.valuation_id} includes {method.value} but stores no value for it",
                    method=method.value,
                )
            if method not in MULTIPLE_METHODS:
                rescaled[method] = original_value
                continue
            original_multiple = snapshot.multiples_used.for_method(method)
            if not original_multiple or original_multiple <= 0:
                raise SnapshotError(
                    f"Valuation {snapshot.valuation_id} includes {method.value} without a usable multiple",
                    method=method.value,
                )
            rescaled[method] = original_value * (adjusted.for_method(method) / original_multiple)
            logger.debug("%s: %.0f -> %.0f", method.value, original_value, rescaled[method])
        return rescaled, values.book_value

    def _recalculate_from_period(
        self,
        snapshot: OriginalValuationSnapshot,
        adjusted: MultiplesUsed,
        period: PeriodFinancials,
    ):
        net_debt = period.net_debt
        ebitda = period.ebitda
        if ebitda == 0 and period.ebit != 0 and period.depreciation:
            ebitda = period.ebit + period.depreciation

        candidates: Dict[ValuationMethod, float] = {
            ValuationMethod.BOOK_VALUE: period.book_value,
            ValuationMethod.ASSET_BASED_VALUE: max(0.0, -net_debt),
        }
        metrics = {
            ValuationMethod.REVENUE: period.revenue,
            ValuationMethod.EBIT: period.ebit,
            ValuationMethod.EBITDA: ebitda,
        }
        for method, metric in metrics.items():
            multiple = adjusted.for_method(method) or 0.0
            value = 0.0
            if metric > 0 and metric * multiple > 0:
                value = max(0.0, metric * multiple - net_debt)
            if snapshot.method_bases.get(method, MethodBasis.BUSINESS_BASED) == MethodBasis.BUSINESS_BASED:
                candidates[method] = value
        pe_multiple = adjusted.pe or 0.0
        if snapshot.method_bases.get(ValuationMethod.PE, MethodBasis.BUSINESS_BASED) == MethodBasis.BUSINESS_BASED:
            candidates[ValuationMethod.PE] = period.net_income * pe_multiple if period.net_income > 0 and pe_multiple > 0 else 0.0

        return candidates, period.book_value

    @staticmethod
    def _scaled_range(snapshot: OriginalValuationSnapshot, average: float) -> ValuationRange:
        original_average = snapshot.average_valuation
        if original_average > 0:
            ratio = average / original_average
            low = snapshot.valuation_range.low * ratio
            high = snapshot.valuation_range.high * ratio
        else:
            low = average * DEFAULT_LOW_RATIO
            high = average * DEFAULT_HIGH_RATIO
        return ValuationRange(low=max(0.0, low), high=max(0.0, high))


def rescale_valuation(
    snapshot: OriginalValuationSnapshot,
    factors: AdjustmentFactors,
    period_data: Optional[PeriodFinancials] = None,
) -> AdjustedValuationResult:
    return ValuationRescaler().rescale(snapshot, factors, period_data)
