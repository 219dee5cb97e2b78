"""Pydantic schemas for the rules domain."""
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class RuleAction(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    HIGHLIGHT = "highlight"


class CamelModel(BaseModel):
    """Accepts and emits the camelCase keys used by stored documents."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Rule Documents ---

class ValidationRule(CamelModel):
    """One check: (path, condition, expected value, severity)."""

    model_config = ConfigDict(frozen=True)

    id: str | None = Field(default=None, validation_alias=AliasChoices("_id", "id"))
    name: str
    description: str | None = None
    target_path: str
    # Kept as free text: documents come from an unvalidated store and
    # unknown names must fail at evaluation time, not at load time.
    condition: str
    expected_value: str | None = Field(
        default=None,
        validation_alias=AliasChoices("expectedValue", "expected_value", "value"),
    )
    severity: Severity
    is_active: bool = True
    action: RuleAction | None = None
    action_detail: str | None = None

    @property
    def effective_action(self) -> RuleAction:
        return self.action or RuleAction(self.severity.value)


class RuleSet(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str | None = Field(default=None, validation_alias=AliasChoices("_id", "id"))
    name: str
    description: str = ""
    is_active: bool = True
    rules: list[ValidationRule] = []

    @property
    def active_rules(self) -> list[ValidationRule]:
        return [rule for rule in self.rules if rule.is_active]


# --- Execution Results ---

class RuleExecutionResult(CamelModel):
    """Outcome of one rule against one message."""
    rule_id: str = ""
    rule_name: str
    target_path: str
    success: bool  # evaluation completed without raising
    violated: bool = False
    value: Any = None
    severity: Severity
    action: RuleAction
    action_detail: str | None = None
    execution_time: float = 0.0  # milliseconds
    error: str | None = None


class ExecutionSummary(CamelModel):
    total_rules: int = 0
    passed_rules: int = 0
    failed_rules: int = 0
    errors: int = 0
    warnings: int = 0
    info: int = 0
    execution_time: float = 0.0  # milliseconds
    skipped: bool = False


class RuleSetExecution(CamelModel):
    results: list[RuleExecutionResult] = []
    summary: ExecutionSummary


class HighlightRule(CamelModel):
    target_path: str
    condition: str = "exists"
    highlight_color: str
    highlight_style: str = "background"  # background, text, border


# --- API Schemas ---

class RuleExecutionRequest(CamelModel):
    """Execute a rule set against a raw message or a stored segment document."""
    raw_message: str | None = None
    parsed_message: dict[str, Any] | None = None
    rule_set: RuleSet


class RuleViolation(CamelModel):
    segment: str
    field: int
    message: str
    severity: Severity
    rule_name: str


class RuleExecutionResponse(CamelModel):
    rule_set_name: str
    execution: RuleSetExecution
    highlighting: list[HighlightRule] = []
    validation_errors: list[RuleViolation] = []
