# HL7 v2.x parsing utilities
from .parser import HL7Parser, HL7BatchParser, is_hl7_timestamp, parse_hl7_datetime
from .paths import FieldPath, locate_field, resolve
from .types import (
    MISSING,
    UNKNOWN,
    MessageMetadata,
    ParsedMessage,
    Segment,
)

__all__ = [
    "HL7Parser",
    "HL7BatchParser",
    "is_hl7_timestamp",
    "parse_hl7_datetime",
    "FieldPath",
    "locate_field",
    "resolve",
    "MISSING",
    "UNKNOWN",
    "MessageMetadata",
    "ParsedMessage",
    "Segment",
]
