from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class ValidationReport(BaseModel):
    is_valid: bool = True
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    info: List[str] = Field(default_factory=list)


class Severity(str, Enum):
    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"


class InputIssue(BaseModel):
    field: str
    value: Any = None
    message: str
    severity: Severity = Severity.ERROR
    suggestion: Optional[str] = None

    @property
    def is_blocking(self) -> bool:
        return self.severity != Severity.WARNING


class InputValidationResult(BaseModel):
    is_valid: bool
    issues: List[InputIssue] = Field(default_factory=list)
    summary: str = ""

    @property
    def errors(self) -> List[InputIssue]:
        return [issue for issue in self.issues if issue.is_blocking]

    @property
    def warnings(self) -> List[InputIssue]:
        return [issue for issue in self.issues if not issue.is_blocking]
