"""Validation engine: combines structural, rule set, profile and content checks."""
import logging
import re
import time
from dataclasses import dataclass

from hl7apy import check_version
from hl7apy.exceptions import UnsupportedVersion

from app.domains.messages.hl7 import ParsedMessage, is_hl7_timestamp, locate_field, resolve
from app.domains.rules.conditions import is_empty
from app.domains.rules.engine import RulesEngine
from app.domains.rules.schemas import RuleSet, Severity
from app.domains.validation.profiles import ConformanceProfile
from app.domains.validation.schemas import ValidationIssue, ValidationReport

logger = logging.getLogger(__name__)

# MSH fields whose absence is reported as a warning (MSH-8 security is optional)
RECOMMENDED_MSH_FIELDS = (1, 2, 3, 4, 5, 6, 7, 9, 10, 11, 12)
DATE_FIELDS = ("MSH.7", "EVN.2", "PID.7", "PV1.44", "PV1.45")
CONTROL_ID_PATTERN = re.compile(r"^[A-Za-z0-9]+$")
MIN_PATIENT_ID_LENGTH = 3

SYSTEM_SEGMENT = "SYSTEM"
RULE_ENGINE_SEGMENT = "RULE_ENGINE"


@dataclass
class ValidationContext:
    message: ParsedMessage
    rule_set: RuleSet | None = None
    custom_schema: ConformanceProfile | None = None


class _Issues:
    """Issue lists bucketed by severity."""

    def __init__(self):
        self.errors: list[ValidationIssue] = []
        self.warnings: list[ValidationIssue] = []
        self.info: list[ValidationIssue] = []

    def has_error(self, segment: str, field: int = 0) -> bool:
        return any(issue.segment == segment and issue.field == field for issue in self.errors)

    def add(self, segment: str, field: int, message: str, severity: Severity) -> None:
        issue = ValidationIssue(segment=segment, field=field, message=message, severity=severity)
        if severity == Severity.ERROR:
            self.errors.append(issue)
        elif severity == Severity.WARNING:
            self.warnings.append(issue)
        else:
            self.info.append(issue)


class ValidationEngine:
    """Comprehensive validation of a parsed HL7 message."""

    def __init__(self, rules_engine: RulesEngine):
        self.rules_engine = rules_engine

    async def validate_message(self, context: ValidationContext) -> ValidationReport:
        """
        Validate a message and return a report. Never raises.

        Stages run in order: structure, rule set, custom schema, content.
        Anything escaping a stage replaces the report with a single
        SYSTEM error.
        """
        start = time.perf_counter()
        rule_set_used = context.rule_set.name if context.rule_set else None
        issues = _Issues()

        try:
            # 1. Basic HL7 structural validation
            self._validate_structure(context.message, issues)

            # 2. Custom rules validation if rule set is provided
            if context.rule_set is not None:
                self._validate_with_rule_set(context.message, context.rule_set, issues)

            # 3. Profile-specific validation (e.g., UK ITK)
            if context.custom_schema is not None:
                self._validate_with_profile(context.message, context.custom_schema, issues)

            # 4. Content-based validation
            self._validate_content(context.message, issues)

        except Exception as e:
            logger.exception(f"Validation engine error: {e}")
            issues = _Issues()
            issues.add(SYSTEM_SEGMENT, 0, f"Validation engine error: {e}", Severity.ERROR)

        report = ValidationReport.from_issues(
            errors=issues.errors,
            warnings=issues.warnings,
            info=issues.info,
            validation_time=(time.perf_counter() - start) * 1000,
            rule_set_used=rule_set_used,
        )
        logger.info(
            f"Validation finished (rule set: {rule_set_used or 'none'}): "
            f"{report.summary.total_errors} errors, {report.summary.total_warnings} warnings"
        )
        return report

    def _validate_structure(self, message: ParsedMessage, issues: _Issues) -> None:
        if not message.has_segment("MSH"):
            issues.add("MSH", 0, "MSH segment is required", Severity.ERROR)
            return

        for field in RECOMMENDED_MSH_FIELDS:
            if is_empty(resolve(message, f"MSH.{field}")):
                issues.add("MSH", field, f"MSH.{field} is recommended but missing", Severity.WARNING)

    def _validate_with_rule_set(self, message: ParsedMessage, rule_set: RuleSet, issues: _Issues) -> None:
        execution = self.rules_engine.execute_rule_set(message, rule_set)

        for result in execution.results:
            if not result.success:
                # A rule that cannot be evaluated makes the report invalid
                issues.add(
                    RULE_ENGINE_SEGMENT,
                    0,
                    f'Failed to evaluate rule "{result.rule_name}": {result.error}',
                    Severity.ERROR,
                )
            elif result.violated:
                segment, field = locate_field(result.target_path)
                issues.add(
                    segment,
                    field,
                    result.action_detail or f"Rule violation: {result.rule_name}",
                    result.severity,
                )

    def _validate_with_profile(
        self,
        message: ParsedMessage,
        profile: ConformanceProfile,
        issues: _Issues,
    ) -> None:
        for segment in profile.mandatory_segments:
            # Skip segments the structural stage already reported as missing
            if not message.has_segment(segment) and not issues.has_error(segment):
                issues.add(segment, 0, f"{segment} segment is mandatory in {profile.name} messages", Severity.ERROR)

        for segment, cardinality in profile.segment_cardinality.items():
            count = message.count(segment)
            # Absence of a mandatory segment is already reported above
            if count == 0:
                continue
            low, high = profile.cardinality_bounds(segment)
            if count < low or (high is not None and count > high):
                issues.add(
                    segment,
                    0,
                    f"{segment} segment cardinality must be {cardinality} in {profile.name} "
                    f"(found {count})",
                    Severity.ERROR,
                )

        for segment, definition in profile.z_segments.items():
            if not message.has_segment(segment) or not definition.fields:
                continue
            first_field = definition.fields[0]
            if is_empty(resolve(message, first_field)):
                _, field = locate_field(first_field)
                issues.add(
                    segment,
                    field,
                    f"{first_field} ({definition.name}) is recommended",
                    Severity.WARNING,
                )

    def _validate_content(self, message: ParsedMessage, issues: _Issues) -> None:
        # Date format validation
        for path in DATE_FIELDS:
            value = resolve(message, path)
            if isinstance(value, str) and value and not is_hl7_timestamp(value):
                segment, field = locate_field(path)
                issues.add(segment, field, f"Invalid date format in {path}: {value}", Severity.WARNING)

        # Patient ID validation
        patient_id = resolve(message, "PID.3")
        if isinstance(patient_id, str) and patient_id and len(patient_id) < MIN_PATIENT_ID_LENGTH:
            issues.add("PID", 3, "Patient ID appears to be too short", Severity.WARNING)

        # Control ID validation
        control_id = resolve(message, "MSH.10")
        if isinstance(control_id, str) and control_id and not CONTROL_ID_PATTERN.match(control_id):
            issues.add("MSH", 10, "Control ID should contain only alphanumeric characters", Severity.WARNING)

        # Message type shape
        message_type = resolve(message, "MSH.9")
        if isinstance(message_type, str) and message_type and "^" not in message_type:
            issues.add("MSH", 9, "Message type should follow format: EVENT^TRIGGER", Severity.WARNING)

        # Version id against the releases hl7apy ships definitions for
        version_id = resolve(message, "MSH.12")
        if isinstance(version_id, str) and version_id:
            try:
                check_version(version_id)
            except UnsupportedVersion:
                issues.add("MSH", 12, f"HL7 version {version_id} is not a recognised v2.x release", Severity.INFO)

