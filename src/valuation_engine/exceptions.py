"""
Exception types raised by the valuation engine
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ValuationEngineError(Exception):
    """Base exception for all valuation engine errors"""

    def __init__(self, message: str, code: str = "VALUATION_ERROR", details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ScenarioCalculationError(ValuationEngineError):
    """Raised when one scenario cannot be computed; the other scenarios are unaffected"""

    def __init__(self, scenario: str, field: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"{scenario} scenario, {field}: {message}", "SCENARIO_CALCULATION_ERROR", details)
        self.scenario = scenario
        self.field = field
        self.reason = message


class SnapshotError(ValuationEngineError):
    """Raised when a stored valuation snapshot cannot be rescaled"""

    def __init__(self, message: str, method: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "SNAPSHOT_ERROR", details)
        self.method = method
