"""Pydantic schemas for validation reports."""
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.domains.rules.schemas import RuleSet, Severity


class ReportModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ValidationIssue(ReportModel):
    segment: str
    field: int = 0
    message: str
    severity: Severity


class ValidationSummary(ReportModel):
    total_errors: int
    total_warnings: int
    total_info: int
    rule_set_used: str | None = None
    validation_time: float  # milliseconds


class ValidationReport(ReportModel):
    is_valid: bool
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []
    info: list[ValidationIssue] = []
    summary: ValidationSummary

    @classmethod
    def from_issues(
        cls,
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue],
        info: list[ValidationIssue],
        validation_time: float,
        rule_set_used: str | None = None,
    ) -> "ValidationReport":
        """Build a report whose validity and counts follow from the issue lists."""
        return cls(
            is_valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
            info=info,
            summary=ValidationSummary(
                total_errors=len(errors),
                total_warnings=len(warnings),
                total_info=len(info),
                rule_set_used=rule_set_used,
                validation_time=validation_time,
            ),
        )


# --- API Schemas ---

class ValidateMessageRequest(ReportModel):
    """Validate a raw message or a stored segment document."""
    raw_message: str | None = None
    parsed_message: dict[str, Any] | None = None
    rule_set: RuleSet | None = None
    profile: str | None = None  # name of a conformance profile, e.g. "UK_ITK"


class ProfileListResponse(ReportModel):
    profiles: list[str]
