"""Exceptions raised by the HL7 Workbench core."""


class HL7WorkbenchError(Exception):
    """Base class for all workbench errors."""


class MessageParseError(HL7WorkbenchError):
    """Raised when message extraction fails internally."""

    def __init__(self, cause: str) -> None:
        super().__init__(f"Failed to parse message: {cause}")
        self.cause = cause


class InvalidPathError(HL7WorkbenchError):
    """Raised for path text that cannot be turned into a field path."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Invalid path '{path}': {reason}")
        self.path = path
        self.reason = reason


class InvalidFieldValueError(HL7WorkbenchError):
    def __init__(self, value: str) -> None:
        super().__init__(f"Field value {value!r} contains a field or segment delimiter")
        self.value = value


class RuleEvaluationError(HL7WorkbenchError):
    """Base class for misconfigured rules."""


class UnknownConditionError(RuleEvaluationError):
    def __init__(self, condition: str) -> None:
        super().__init__(f"Unknown condition: {condition}")
        self.condition = condition


class InvalidConditionOperandError(RuleEvaluationError):
    """Raised when a condition's expected value cannot be interpreted."""

    def __init__(self, condition: str, expected: str | None, reason: str) -> None:
        super().__init__(f"Invalid operand {expected!r} for condition '{condition}': {reason}")
        self.condition = condition
        self.expected = expected


class ProfileNotFoundError(HL7WorkbenchError):
    def __init__(self, profile_name: str) -> None:
        super().__init__(f"Conformance profile not found: {profile_name}")
        self.profile_name = profile_name
