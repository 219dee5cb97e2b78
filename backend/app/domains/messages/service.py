"""Service layer for the messages domain."""
import logging
from collections.abc import Mapping
from typing import Any

from app.core.exceptions import InvalidFieldValueError, InvalidPathError
from app.domains.messages.hl7 import FieldPath, HL7BatchParser, HL7Parser, ParsedMessage, Segment
from app.domains.messages.hl7.parser import FIELD_SEPARATOR, HEADER_SEGMENTS

logger = logging.getLogger(__name__)


class MessageService:
    """Parse, regenerate and edit messages."""

    def __init__(self, parser: HL7Parser):
        self.parser = parser
        self.batch_parser = HL7BatchParser(parser)

    def parse(self, raw_message: str) -> ParsedMessage:
        return self.parser.parse(raw_message)

    def parse_batch(self, content: str) -> list[ParsedMessage]:
        return self.batch_parser.parse_file_content(content)

    def load(self, document: Mapping[str, Any]) -> ParsedMessage:
        return self.parser.load_segments(document)

    def load_input(
        self,
        raw_message: str | None = None,
        parsed_message: Mapping[str, Any] | None = None,
    ) -> ParsedMessage | None:
        """Load whichever form of message a request carried; a segment document wins."""
        if parsed_message is not None:
            return self.load(parsed_message)
        if raw_message is not None:
            return self.parse(raw_message)
        return None

    def generate(self, message: ParsedMessage) -> str:
        return self.parser.generate(message)

    def edit_field(self, message: ParsedMessage, path: str, value: str) -> ParsedMessage:
        """
        Set a single field and return a freshly parsed message.

        The input message is left untouched. A missing segment is appended
        (first occurrence only) and short field lists are padded with "".

        Raises:
            InvalidPathError: path is not of the form SEGMENT[n].FIELD
            InvalidFieldValueError: value contains a field or segment delimiter
        """
        field_path = FieldPath.parse(path)
        index = field_path.field_index
        if index is None or len(field_path.tokens) != 1:
            raise InvalidPathError(path, "edits address a single field, e.g. PID.5")
        if index == 0:
            raise InvalidPathError(path, "field 0 is the segment name")
        if field_path.segment in HEADER_SEGMENTS and index == 1:
            raise InvalidPathError(path, f"{field_path.segment}.1 is the field separator")
        if FIELD_SEPARATOR in value or "\r" in value or "\n" in value:
            raise InvalidFieldValueError(value)

        segment_list = [Segment(segment.name, self._as_field_list(segment)) for segment in message.segment_list]
        occurrence = field_path.occurrence or 1
        targets = [segment for segment in segment_list if segment.name == field_path.segment]

        if occurrence <= len(targets):
            target = targets[occurrence - 1]
        elif occurrence == 1:
            target = Segment(field_path.segment, [field_path.segment])
            segment_list.append(target)
        else:
            raise InvalidPathError(
                path, f"message has {len(targets)} {field_path.segment} segment(s)"
            )

        if field_path.segment in HEADER_SEGMENTS and target.fields[1:2] != [FIELD_SEPARATOR]:
            target.fields.insert(1, FIELD_SEPARATOR)
        if len(target.fields) <= index:
            target.fields.extend([""] * (index + 1 - len(target.fields)))
        target.fields[index] = value

        logger.debug(f"Edited {field_path}")
        return self.parser.parse(self.parser.generate(ParsedMessage(segment_list=segment_list)))

    def _as_field_list(self, segment: Segment) -> list[str]:
        if isinstance(segment.fields, Mapping):
            return self.parser.fields_from_mapping(segment.name, segment.fields)
        return list(segment.fields)
