from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, HTTPException
from pydantic import ValidationError

from .config import get_settings
from .exceptions import ValuationEngineError
from .logging_config import configure_logging
from .models.common import ScenarioType
from .models.readiness import AdjustmentFactors
from .models.results import DCFCalculationResult, ValuationSummary
from .models.validation import ValidationReport
from .schemas import (
    AdjustmentFactorsRequest,
    DCFRequest,
    DCFResponse,
    ValidateRequest,
    ValidateResponse,
    ValuationImpactRequest,
    ValuationImpactResponse,
    VariantDCFRequest,
    VariantDCFResponse,
)
from .services.adjustment_factors import compute_adjustment_factors
from .services.assumptions import build_assumptions
from .services.calculator import DCFCalculator
from .services.input_validation import validate_dcf_inputs
from .services.rescaling import rescale_valuation
from .services.sensitivity import run_sensitivity
from .services.validator import DCFValidator, format_validation_results

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging(settings.log_level, settings.log_json)
    yield


app = FastAPI(title=settings.api_title, version="0.1.0", lifespan=lifespan)

calculator = DCFCalculator(max_workers=settings.scenario_workers)
validator = DCFValidator()


def _unprocessable(exc: Exception) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=422, detail=exc.errors(include_url=False, include_context=False))
    if isinstance(exc, ValuationEngineError):
        return HTTPException(status_code=422, detail={"code": exc.code, "message": exc.message, "details": exc.details})
    return HTTPException(status_code=422, detail=str(exc))


def _summary(result: DCFCalculationResult, weights: Optional[Dict[ScenarioType, float]] = None) -> Optional[ValuationSummary]:
    if not result.scenarios:
        return None
    try:
        return result.summary(weights)
    except ValuationEngineError as exc:
        raise _unprocessable(exc) from exc


@app.post("/dcf", response_model=DCFResponse)
def run_dcf(payload: DCFRequest) -> DCFResponse:
    result = calculator.run(payload.assumptions, payload.baseline, payload.config)
    validation: Dict[ScenarioType, ValidationReport] = {}
    if payload.validate_results:
        validation = {scenario: validator.validate_scenario(outcome) for scenario, outcome in result.scenarios.items()}
    return DCFResponse(result=result, summary=_summary(result, payload.weights), validation=validation)


@app.post("/dcf/variant", response_model=VariantDCFResponse)
def run_variant_dcf(payload: VariantDCFRequest) -> VariantDCFResponse:
    input_validation = validate_dcf_inputs(payload.inputs)
    if not input_validation.is_valid:
        raise HTTPException(status_code=422, detail=input_validation.model_dump(mode="json"))
    try:
        built = build_assumptions(payload.inputs)
    except (ValuationEngineError, ValidationError) as exc:
        raise _unprocessable(exc) from exc

    result = calculator.run(built.assumptions, built.baseline, built.config)
    sensitivity = None
    if payload.include_sensitivity and ScenarioType.BASE in result.scenarios:
        try:
            sensitivity = run_sensitivity(built.assumptions[ScenarioType.BASE], built.baseline, built.config)
        except ValuationEngineError as exc:
            raise _unprocessable(exc) from exc
    return VariantDCFResponse(
        input_validation=input_validation,
        assumptions=built,
        result=result,
        summary=_summary(result),
        sensitivity=sensitivity,
    )


@app.post("/dcf/validate", response_model=ValidateResponse)
def validate_dcf(payload: ValidateRequest) -> ValidateResponse:
    report = validator.validate_scenario(payload.scenario)
    return ValidateResponse(report=report, text=format_validation_results(report))


@app.post("/adjustment-factors", response_model=AdjustmentFactors)
def adjustment_factors(payload: AdjustmentFactorsRequest) -> AdjustmentFactors:
    return compute_adjustment_factors(payload.analysis)


@app.post("/valuation-impact", response_model=ValuationImpactResponse)
def valuation_impact(payload: ValuationImpactRequest) -> ValuationImpactResponse:
    factors = payload.factors or compute_adjustment_factors(payload.analysis)
    try:
        result = rescale_valuation(payload.snapshot, factors, payload.period_data)
    except ValuationEngineError as exc:
        raise _unprocessable(exc) from exc

    original = payload.snapshot.average_valuation
    change = (result.average_valuation - original) / abs(original) * 100 if original else 0.0
    logger.info("Valuation %s: %.0f -> %.0f", payload.snapshot.valuation_id, original, result.average_valuation)
    return ValuationImpactResponse(factors=factors, result=result, original_average=original, change_percent=change)


@app.get("/health")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}
