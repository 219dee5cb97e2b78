"""Dotted path addressing ("PID.3", "OBX[2].5") into parsed messages."""
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from app.core.exceptions import InvalidPathError

from .types import MISSING, ParsedMessage

PATH_SEPARATOR = "."
SEGMENT_TOKEN_PATTERN = re.compile(r"^(?P<segment>[A-Za-z0-9_]+)(?:\[(?P<occurrence>\d+)\])?$")


@dataclass(frozen=True)
class FieldPath:
    """A parsed path: segment type, optional 1-based occurrence, then hops."""
    segment: str
    tokens: tuple[str, ...] = ()
    occurrence: int | None = None

    @classmethod
    def parse(cls, path: str) -> "FieldPath":
        if not isinstance(path, str) or not path.strip():
            raise InvalidPathError(str(path), "path is empty")

        head, *rest = path.strip().split(PATH_SEPARATOR)
        match = SEGMENT_TOKEN_PATTERN.match(head)
        if not match:
            raise InvalidPathError(path, f"'{head}' is not a segment name")

        occurrence = match.group("occurrence")
        if occurrence is not None and int(occurrence) < 1:
            raise InvalidPathError(path, "occurrences are numbered from 1")
        if any(not token.strip() for token in rest):
            raise InvalidPathError(path, "empty path element")

        return cls(
            segment=match.group("segment"),
            tokens=tuple(token.strip() for token in rest),
            occurrence=int(occurrence) if occurrence is not None else None,
        )

    @property
    def field_index(self) -> int | None:
        """The field number of a SEGMENT.N path, else None."""
        if self.tokens and self.tokens[0].isdigit():
            return int(self.tokens[0])
        return None

    def __str__(self) -> str:
        head = self.segment if self.occurrence is None else f"{self.segment}[{self.occurrence}]"
        return PATH_SEPARATOR.join((head, *self.tokens))


def resolve(message: ParsedMessage, path: str | FieldPath) -> Any:
    """
    Resolve a path against a message.

    Never raises. Returns MISSING when any hop is absent, which is distinct
    from a present-but-empty field ("").
    """
    if isinstance(path, FieldPath):
        field_path = path
    else:
        try:
            field_path = FieldPath.parse(path)
        except InvalidPathError:
            return MISSING

    segment = message.get_segment(field_path.segment, field_path.occurrence or 1)
    if segment is None:
        return MISSING

    current: Any = segment.fields
    prefix = field_path.segment
    for token in field_path.tokens:
        prefix = f"{prefix}{PATH_SEPARATOR}{token}"
        current = _step(current, token, prefix)
        if current is MISSING:
            return MISSING
    return current


def _step(current: Any, token: str, qualified_key: str) -> Any:
    if isinstance(current, (list, tuple)):
        if not token.isdigit():
            return MISSING
        index = int(token)
        return current[index] if index < len(current) else MISSING

    if isinstance(current, Mapping):
        # Stored segment documents key fields either bare ("3") or qualified ("PID.3")
        for key in (token, qualified_key):
            if key in current:
                return current[key]
        return MISSING

    return MISSING


def locate_field(path: str) -> tuple[str, int]:
    """Segment name and field number a path points at, for issue reporting."""
    try:
        field_path = FieldPath.parse(path)
    except InvalidPathError:
        return (path.split(PATH_SEPARATOR)[0] if isinstance(path, str) else "") or "Unknown", 0
    return field_path.segment, field_path.field_index or 0
