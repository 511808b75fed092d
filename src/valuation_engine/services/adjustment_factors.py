from __future__ import annotations

import logging
import math
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from ..config import DEFAULT_POLICY, EnginePolicy
from ..models.readiness import AdjustmentFactors, ReadinessCategory, SalesReadinessAnalysis

logger = logging.getLogger(__name__)

C = ReadinessCategory

# Share of each category's value impact carried into a method's multiple.
METHOD_WEIGHTS: Dict[str, Dict[ReadinessCategory, float]] = {
    "revenue_multiple_factor": {
        C.CUSTOMER_CONCENTRATION: 0.35,
        C.CONTRACT_STRUCTURE: 0.30,
        C.STRATEGIC: 0.25,
        C.DOCUMENTATION: 0.10,
    },
    "ebit_multiple_factor": {
        C.OPERATIONAL: 0.30,
        C.FINANCIAL: 0.30,
        C.KEY_PERSON_DEPENDENCY: 0.25,
        C.DOCUMENTATION: 0.15,
    },
    "ebitda_multiple_factor": {
        C.OPERATIONAL: 0.35,
        C.FINANCIAL: 0.25,
        C.KEY_PERSON_DEPENDENCY: 0.25,
        C.DOCUMENTATION: 0.15,
    },
    "pe_multiple_factor": {
        C.FINANCIAL: 0.40,
        C.LEGAL: 0.25,
        C.OPERATIONAL: 0.20,
        C.DOCUMENTATION: 0.15,
    },
}


def impact_to_factor(impact_percent: float) -> float:
    return 1 + impact_percent / 100


class AdjustmentFactorEngine:
    def __init__(self, policy: EnginePolicy = DEFAULT_POLICY):
        self.policy = policy

    def compute(self, analysis: Union[SalesReadinessAnalysis, Mapping[str, Any], None]) -> AdjustmentFactors:
        if analysis is None:
            logger.warning("No sales readiness analysis supplied, using neutral factors")
            return AdjustmentFactors.neutral()
        try:
            if not isinstance(analysis, SalesReadinessAnalysis):
                analysis = SalesReadinessAnalysis.model_validate(analysis)
        except ValidationError as exc:
            logger.warning("Malformed sales readiness analysis (%d errors), using neutral factors", exc.error_count())
            return AdjustmentFactors.neutral()

        if not analysis.assessments or not analysis.category_weights:
            logger.warning("Sales readiness analysis lacks impacts or weights, using neutral factors")
            return AdjustmentFactors.neutral()

        impacts: Dict[ReadinessCategory, float] = {}
        for category in ReadinessCategory:
            impact = analysis.impact_for(category)
            if impact is None:
                continue
            if not math.isfinite(impact):
                logger.warning("Non-finite impact for %s, using neutral factors", category.value)
                return AdjustmentFactors.neutral()
            impacts[category] = impact

        total_weight = sum(analysis.category_weights.values())
        if abs(total_weight - 1.0) > 0.05:
            logger.warning("Category weights sum to %.3f, normalizing by the weights in use", total_weight)

        overall = impact_to_factor(self._weighted_impact(impacts, analysis.category_weights))
        values = {f"{category.value}_factor": impact_to_factor(impacts.get(category, 0.0)) for category in ReadinessCategory}
        values["overall_factor"] = self._bound(overall)
        for name, weights in METHOD_WEIGHTS.items():
            blended = sum(impacts.get(category, 0.0) * share for category, share in weights.items())
            values[name] = self._bound(impact_to_factor(blended))

        factors = AdjustmentFactors(**values)
        logger.info(
            "Adjustment factors: overall=%.3f revenue=%.3f ebit=%.3f ebitda=%.3f pe=%.3f",
            factors.overall_factor,
            factors.revenue_multiple_factor,
            factors.ebit_multiple_factor,
            factors.ebitda_multiple_factor,
            factors.pe_multiple_factor,
        )
        return factors

    @staticmethod
    def _weighted_impact(impacts: Dict[ReadinessCategory, float], weights: Mapping[ReadinessCategory, float]) -> float:
        weighted = 0.0
        used = 0.0
        for category, impact in impacts.items():
            weight = weights.get(category)
            if not weight or not math.isfinite(weight):
                continue
            weighted += impact * weight
            used += weight
        return weighted / used if used > 0 else 0.0

    def _bound(self, factor: float) -> float:
        bounded = min(max(factor, self.policy.factor_floor), self.policy.factor_cap)
        if bounded != factor:
            logger.warning("Factor %.3f outside [%.2f, %.2f], bounded to %.3f", factor, self.policy.factor_floor, self.policy.factor_cap, bounded)
        return bounded


def compute_adjustment_factors(
    analysis: Union[SalesReadinessAnalysis, Mapping[str, Any], None],
    policy: Optional[EnginePolicy] = None,
) -> AdjustmentFactors:
    return AdjustmentFactorEngine(policy or DEFAULT_POLICY).compute(analysis)
