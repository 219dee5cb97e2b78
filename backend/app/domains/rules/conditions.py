"""Condition evaluation for validation rules.

Every built-in condition maps (value, expected) to a "violated" flag. The
crossField, conditional and customDate conditions need more than the
value, so they are dispatched to named extension evaluators that receive
the whole message and can be replaced per evaluator instance.
"""
import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from app.core.exceptions import InvalidConditionOperandError, RuleEvaluationError, UnknownConditionError
from app.domains.messages.hl7 import MISSING, ParsedMessage, is_hl7_timestamp, resolve

logger = logging.getLogger(__name__)


class Condition(str, Enum):
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    CONTAINS = "contains"
    MATCHES_REGEX = "matchesRegex"
    LENGTH = "length"
    MIN_LENGTH = "minLength"
    MAX_LENGTH = "maxLength"
    IN_LIST = "inList"
    CROSS_FIELD = "crossField"
    CONDITIONAL = "conditional"
    CUSTOM_DATE = "customDate"

    @classmethod
    def from_name(cls, name: "str | Condition") -> "Condition":
        """Look up a condition by its stored name, case-insensitively."""
        if isinstance(name, Condition):
            return name
        key = str(name).strip().lower()
        try:
            return _CONDITIONS_BY_KEY[key]
        except KeyError:
            raise UnknownConditionError(str(name)) from None


_CONDITIONS_BY_KEY = {condition.value.lower(): condition for condition in Condition}
_CONDITIONS_BY_KEY["notequals"] = Condition.NOT_EQUALS

EXTENSION_CONDITIONS = frozenset({Condition.CROSS_FIELD, Condition.CONDITIONAL, Condition.CUSTOM_DATE})


@dataclass(frozen=True)
class ConditionOutcome:
    violated: bool
    value: Any = MISSING


# (value, expected, message, evaluator) -> violated
ExtensionEvaluator = Callable[[Any, "str | None", "ParsedMessage | None", "ConditionEvaluator"], bool]


def is_empty(value: Any) -> bool:
    return value is MISSING or value is None or value == ""


def _comparable(value: Any) -> Any:
    return None if value is MISSING else value


def _length_operand(condition: Condition, expected: str | None) -> int:
    try:
        return int(str(expected).strip())
    except (TypeError, ValueError):
        raise InvalidConditionOperandError(condition.value, expected, "expected an integer") from None


def _string_length_check(condition: Condition, compare: Callable[[int, int], bool]):
    def check(value: Any, expected: str | None) -> bool:
        limit = _length_operand(condition, expected)
        if not isinstance(value, str):
            return True
        return not compare(len(value), limit)
    return check


def _matches_regex(value: Any, expected: str | None) -> bool:
    # Compiled first so a bad pattern raises re.error whatever the value is
    pattern = re.compile(expected or "")
    return not isinstance(value, str) or pattern.search(value) is None


def _in_list(value: Any, expected: str | None) -> bool:
    allowed = {item.strip() for item in (expected or "").split(",") if item.strip()}
    return not isinstance(value, str) or value.strip() not in allowed


_BUILTIN_EVALUATORS: dict[Condition, Callable[[Any, str | None], bool]] = {
    Condition.EXISTS: lambda value, expected: is_empty(value),
    Condition.NOT_EXISTS: lambda value, expected: not is_empty(value),
    Condition.EQUALS: lambda value, expected: _comparable(value) != expected,
    Condition.NOT_EQUALS: lambda value, expected: _comparable(value) == expected,
    Condition.STARTS_WITH: lambda value, expected: (
        not isinstance(value, str) or not value.startswith(expected or "")
    ),
    Condition.ENDS_WITH: lambda value, expected: (
        not isinstance(value, str) or not value.endswith(expected or "")
    ),
    Condition.CONTAINS: lambda value, expected: (
        not isinstance(value, str) or (expected or "") not in value
    ),
    Condition.MATCHES_REGEX: _matches_regex,
    Condition.LENGTH: _string_length_check(Condition.LENGTH, lambda length, limit: length == limit),
    Condition.MIN_LENGTH: _string_length_check(Condition.MIN_LENGTH, lambda length, limit: length >= limit),
    Condition.MAX_LENGTH: _string_length_check(Condition.MAX_LENGTH, lambda length, limit: length <= limit),
    Condition.IN_LIST: _in_list,
}


# --- Extension Evaluators ---

def evaluate_cross_field(
    value: Any,
    expected: str | None,
    message: ParsedMessage | None,
    evaluator: "ConditionEvaluator",
) -> bool:
    """Violated when the value differs from the value at the path in ``expected``."""
    if message is None:
        raise RuleEvaluationError("crossField needs the message to resolve its comparison path")
    if not expected:
        raise InvalidConditionOperandError(Condition.CROSS_FIELD.value, expected, "expected a path")
    return _comparable(value) != _comparable(resolve(message, expected.strip()))


CONDITIONAL_PATTERN = re.compile(
    r"^\s*IF\s+(?P<if_path>[^\s=!]+)\s*(?P<operator>!=|=)\s*(?P<if_value>.*?)"
    r"\s+THEN\s+(?P<then_path>\S+)\s+(?P<then_condition>\S+)(?:\s+(?P<operand>.+?))?\s*$",
    re.IGNORECASE,
)


def evaluate_conditional(
    value: Any,
    expected: str | None,
    message: ParsedMessage | None,
    evaluator: "ConditionEvaluator",
) -> bool:
    """
    Evaluate ``IF <path>=<value> THEN <path> <condition> [operand]``.

    Violated only when the IF clause holds and the THEN condition is
    violated; a false IF clause passes.
    """
    if message is None:
        raise RuleEvaluationError("conditional needs the message to resolve its paths")
    match = CONDITIONAL_PATTERN.match(expected or "")
    if not match:
        raise InvalidConditionOperandError(
            Condition.CONDITIONAL.value, expected, "expected 'IF <path>=<value> THEN <path> <condition> [operand]'"
        )

    actual = _comparable(resolve(message, match.group("if_path")))
    holds = actual == match.group("if_value").strip()
    if match.group("operator") == "!=":
        holds = not holds
    if not holds:
        return False

    then_value = resolve(message, match.group("then_path"))
    outcome = evaluator.evaluate(then_value, match.group("then_condition"), match.group("operand"), message)
    return outcome.violated


DATE_PICTURES = {
    "YYYY": "%Y",
    "YYYYMM": "%Y%m",
    "YYYYMMDD": "%Y%m%d",
    "YYYYMMDDHH": "%Y%m%d%H",
    "YYYYMMDDHHMM": "%Y%m%d%H%M",
    "YYYYMMDDHHMMSS": "%Y%m%d%H%M%S",
}


def evaluate_custom_date(
    value: Any,
    expected: str | None,
    message: ParsedMessage | None,
    evaluator: "ConditionEvaluator",
) -> bool:
    """Violated unless the value is a real date in the picture given (HL7 TS by default)."""
    if not isinstance(value, str):
        return True
    if not expected:
        return not is_hl7_timestamp(value)

    picture = expected.strip().upper()
    if picture not in DATE_PICTURES:
        raise InvalidConditionOperandError(
            Condition.CUSTOM_DATE.value, expected, f"supported pictures are {', '.join(DATE_PICTURES)}"
        )
    if len(value) != len(picture) or not value.isdigit():
        return True
    try:
        datetime.strptime(value, DATE_PICTURES[picture])
    except ValueError:
        return True
    return False


DEFAULT_EXTENSIONS: dict[Condition, ExtensionEvaluator] = {
    Condition.CROSS_FIELD: evaluate_cross_field,
    Condition.CONDITIONAL: evaluate_conditional,
    Condition.CUSTOM_DATE: evaluate_custom_date,
}


class ConditionEvaluator:
    """Evaluates rule conditions against resolved values."""

    def __init__(self, extensions: Mapping[Condition, ExtensionEvaluator] | None = None):
        self._extensions: dict[Condition, ExtensionEvaluator] = dict(DEFAULT_EXTENSIONS)
        if extensions:
            self._extensions.update(extensions)

    def register(self, condition: Condition | str, evaluator: ExtensionEvaluator) -> None:
        """Replace the evaluator behind crossField, conditional or customDate."""
        condition = Condition.from_name(condition)
        if condition not in EXTENSION_CONDITIONS:
            raise ValueError(f"{condition.value} is a built-in condition and cannot be replaced")
        self._extensions[condition] = evaluator
        logger.debug(f"Registered evaluator for {condition.value}")

    def evaluate(
        self,
        value: Any,
        condition: Condition | str,
        expected: str | None = None,
        message: ParsedMessage | None = None,
    ) -> ConditionOutcome:
        """
        Evaluate one condition.

        Raises:
            UnknownConditionError: condition name is not recognised
            InvalidConditionOperandError: expected value cannot be used
            re.error: matchesRegex pattern does not compile
        """
        condition = Condition.from_name(condition)

        if condition in EXTENSION_CONDITIONS:
            violated = self._extensions[condition](value, expected, message, self)
        else:
            violated = _BUILTIN_EVALUATORS[condition](value, expected)

        return ConditionOutcome(violated=bool(violated), value=value)
