"""Data types for parsed HL7 v2.x messages."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

UNKNOWN = "Unknown"


class _Missing:
    """Marker for a path that does not resolve to anything."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


# Distinct from None and "" - a field that is present but empty resolves to "".
MISSING: Any = _Missing()


@dataclass
class MessageMetadata:
    """Header summary derived from the MSH segment."""
    message_type: str = UNKNOWN  # MSH-9, e.g. "ADT^A01"
    version_id: str = UNKNOWN  # MSH-12
    sending_application: str = UNKNOWN  # MSH-3
    sending_facility: str = UNKNOWN  # MSH-4
    receiving_application: str = UNKNOWN  # MSH-5
    receiving_facility: str = UNKNOWN  # MSH-6
    control_id: str = UNKNOWN  # MSH-10
    processing_id: str = UNKNOWN  # MSH-11
    timestamp: datetime = field(default_factory=datetime.now)  # MSH-7

    @property
    def message_code(self) -> str:
        """First component of the message type (ADT in ADT^A01)."""
        return self.message_type.split("^")[0] or UNKNOWN

    @property
    def trigger_event(self) -> str | None:
        parts = self.message_type.split("^")
        return parts[1] if len(parts) > 1 and parts[1] else None


@dataclass
class Segment:
    """One segment occurrence.

    ``fields`` is a list where index 0 is the segment name and index N is
    field N, or a nested mapping when the message was loaded from a stored
    segment document.
    """
    name: str
    fields: list[str] | dict[str, Any]


@dataclass
class ParsedMessage:
    """A message split into segments, in the order they appeared."""
    segment_list: list[Segment] = field(default_factory=list)
    metadata: MessageMetadata = field(default_factory=MessageMetadata)
    raw: str = ""

    @property
    def segments(self) -> dict[str, list[str] | dict[str, Any]]:
        """Segment name -> fields of its first occurrence."""
        first: dict[str, list[str] | dict[str, Any]] = {}
        for segment in self.segment_list:
            first.setdefault(segment.name, segment.fields)
        return first

    @property
    def segment_names(self) -> list[str]:
        return list(self.segments)

    def get_segments(self, name: str) -> list[Segment]:
        """All occurrences of a segment type, in message order."""
        return [segment for segment in self.segment_list if segment.name == name]

    def get_segment(self, name: str, occurrence: int = 1) -> Segment | None:
        """Get the nth (1-based) occurrence of a segment type."""
        occurrences = self.get_segments(name)
        if occurrence < 1 or occurrence > len(occurrences):
            return None
        return occurrences[occurrence - 1]

    def has_segment(self, name: str) -> bool:
        return any(segment.name == name for segment in self.segment_list)

    def count(self, name: str) -> int:
        return len(self.get_segments(name))

    @property
    def is_empty(self) -> bool:
        return not self.segment_list
