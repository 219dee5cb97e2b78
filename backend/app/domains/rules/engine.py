"""Rule execution engine: runs rule sets against parsed messages."""
import logging
import re
import time
from typing import Any

from app.domains.messages.hl7 import MISSING, ParsedMessage, resolve
from app.domains.rules.conditions import ConditionEvaluator, ConditionOutcome
from app.domains.rules.schemas import (
    ExecutionSummary,
    HighlightRule,
    RuleAction,
    RuleExecutionResult,
    RuleSet,
    RuleSetExecution,
    Severity,
    ValidationRule,
)

logger = logging.getLogger(__name__)

HIGHLIGHT_COLOR_PATTERN = re.compile(r"color:\s*([#\w]+)")
DEFAULT_HIGHLIGHT_COLORS = {
    Severity.ERROR: "#ffebee",
    Severity.WARNING: "#fff3e0",
    Severity.INFO: "#e3f2fd",
}


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class RulesEngine:
    """Executes validation rules against a message.

    Rules are evaluated in rule set order. A rule that raises is recorded as
    a failed result and does not stop the rules after it.
    """

    def __init__(self, evaluator: ConditionEvaluator):
        self.evaluator = evaluator

    def execute_rule_set(self, message: ParsedMessage, rule_set: RuleSet) -> RuleSetExecution:
        """
        Execute all active rules in a rule set.

        An inactive rule set is skipped: no results, ``summary.skipped``.
        """
        start = time.perf_counter()

        if not rule_set.is_active:
            logger.info(f"Rule set '{rule_set.name}' is inactive, skipping")
            return RuleSetExecution(
                results=[],
                summary=ExecutionSummary(skipped=True, execution_time=_elapsed_ms(start)),
            )

        results = [self.execute_rule(rule, message) for rule in rule_set.active_rules]
        summary = self._generate_execution_summary(results, _elapsed_ms(start))

        logger.info(
            f"Executed rule set '{rule_set.name}': {summary.passed_rules}/{summary.total_rules} passed "
            f"in {summary.execution_time:.2f}ms"
        )
        return RuleSetExecution(results=results, summary=summary)

    def execute_rule(self, rule: ValidationRule, message: ParsedMessage) -> RuleExecutionResult:
        """Execute a single rule, capturing any evaluation error on the result."""
        start = time.perf_counter()

        try:
            outcome = self.evaluate_rule(rule, message)
        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.warning(f"Rule '{rule.name}' failed to evaluate: {error}")
            return self._result(rule, success=False, execution_time=_elapsed_ms(start), error=error)

        return self._result(
            rule,
            success=True,
            violated=outcome.violated,
            value=outcome.value,
            execution_time=_elapsed_ms(start),
        )

    def evaluate_rule(self, rule: ValidationRule, message: ParsedMessage) -> ConditionOutcome:
        """Resolve the rule's target path and evaluate its condition. May raise."""
        value = resolve(message, rule.target_path)
        return self.evaluator.evaluate(value, rule.condition, rule.expected_value, message)

    def generate_highlighting_rules(self, results: list[RuleExecutionResult]) -> list[HighlightRule]:
        """Highlight the fields of violated rules whose action is "highlight"."""
        return [
            HighlightRule(
                target_path=result.target_path,
                highlight_color=self._extract_highlight_color(result.action_detail, result.severity),
            )
            for result in results
            if result.violated and result.action == RuleAction.HIGHLIGHT
        ]

    def create_custom_rule(self, **rule_data: Any) -> ValidationRule:
        """Build a rule, filling in the defaults used for ad-hoc rules."""
        defaults = {
            "name": "Custom Rule",
            "condition": "exists",
            "severity": Severity.WARNING,
            "action": RuleAction.WARNING,
            "is_active": True,
        }
        return ValidationRule.model_validate({**defaults, **rule_data})

    def _result(
        self,
        rule: ValidationRule,
        success: bool,
        execution_time: float,
        violated: bool = False,
        value: Any = None,
        error: str | None = None,
    ) -> RuleExecutionResult:
        return RuleExecutionResult(
            rule_id=rule.id or "",
            rule_name=rule.name,
            target_path=rule.target_path,
            success=success,
            violated=violated,
            value=None if value is MISSING else value,
            severity=rule.severity,
            action=rule.effective_action,
            action_detail=rule.action_detail,
            execution_time=execution_time,
            error=error,
        )

    def _extract_highlight_color(self, action_detail: str | None, severity: Severity) -> str:
        if action_detail:
            match = HIGHLIGHT_COLOR_PATTERN.search(action_detail)
            if match:
                return match.group(1)
        return DEFAULT_HIGHLIGHT_COLORS.get(severity, "#f5f5f5")

    def _generate_execution_summary(
        self,
        results: list[RuleExecutionResult],
        execution_time: float,
    ) -> ExecutionSummary:
        violations = [result for result in results if result.violated]
        return ExecutionSummary(
            total_rules=len(results),
            passed_rules=sum(1 for result in results if result.success and not result.violated),
            failed_rules=sum(1 for result in results if not result.success or result.violated),
            errors=sum(1 for result in violations if result.severity == Severity.ERROR),
            warnings=sum(1 for result in violations if result.severity == Severity.WARNING),
            info=sum(1 for result in violations if result.severity == Severity.INFO),
            execution_time=execution_time,
        )
