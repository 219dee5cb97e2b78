"""HL7 v2.x pipe-delimited message parser."""
import logging
import re
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from app.core.exceptions import MessageParseError

from .types import UNKNOWN, MessageMetadata, ParsedMessage, Segment

logger = logging.getLogger(__name__)

# Segment delimiter used when rendering messages
SEGMENT_DELIMITER = "\r"
FIELD_SEPARATOR = "|"
# Header segments carry the field separator itself as field 1
HEADER_SEGMENTS = ("MSH", "BHS", "FHS")
LINE_BREAK_PATTERN = re.compile(r"\r\n|\r|\n")
# Envelope segments wrapped around the messages of a batch file
BATCH_ENVELOPE_SEGMENTS = ("FHS", "BHS", "BTS", "FTS")
# HL7 TS: YYYYMMDD[HHMMSS[.S[S[S[S]]]]][+/-ZZZZ]
HL7_TIMESTAMP_PATTERN = re.compile(r"^\d{8}(\d{6}(\.\d{1,4})?)?([+-]\d{4})?$")

# MSH field positions read into MessageMetadata
MSH_SENDING_APPLICATION = 3
MSH_SENDING_FACILITY = 4
MSH_RECEIVING_APPLICATION = 5
MSH_RECEIVING_FACILITY = 6
MSH_DATETIME = 7
MSH_MESSAGE_TYPE = 9
MSH_CONTROL_ID = 10
MSH_PROCESSING_ID = 11
MSH_VERSION_ID = 12


class HL7Parser:
    """Parser for individual HL7 v2.x messages.

    Fields are kept as opaque strings: components (^), repetitions (~) and
    escapes (\\) are not interpreted.
    """

    def parse(self, raw_message: str) -> ParsedMessage:
        """
        Parse a single HL7 v2.x message.

        Unrecognised layouts are not rejected: every non-blank line becomes a
        segment named by whatever precedes its first "|".

        Args:
            raw_message: Raw HL7 message string

        Returns:
            ParsedMessage with segments and header metadata

        Raises:
            MessageParseError: if extraction fails internally
        """
        try:
            normalized = self._normalize_message(raw_message)

            segment_list = [
                self._parse_segment(line)
                for line in normalized.split(SEGMENT_DELIMITER)
                if line.strip()
            ]
            parsed = ParsedMessage(segment_list=segment_list, raw=raw_message)
            parsed.metadata = self.extract_metadata(parsed.segments.get("MSH"))

        except Exception as e:
            logger.warning(f"Failed to parse HL7 message: {e}")
            raise MessageParseError(str(e)) from e

        logger.debug(
            f"Parsed {len(parsed.segment_list)} segments "
            f"({parsed.metadata.message_type}, control id {parsed.metadata.control_id})"
        )
        return parsed

    def load_segments(self, document: Mapping[str, Any]) -> ParsedMessage:
        """
        Build a ParsedMessage from a stored segment document.

        Each value is a field list, a list of field lists (repeating
        segments), or a nested key/value object such as
        ``{"PID.3": "12345"}``.
        """
        try:
            segment_list: list[Segment] = []
            for name, value in document.items():
                if self._is_occurrence_list(value):
                    for fields in value:
                        segment_list.append(Segment(name, self._normalize_fields(name, fields)))
                elif isinstance(value, (list, tuple, Mapping)):
                    segment_list.append(Segment(name, self._normalize_fields(name, value)))
                else:
                    raise TypeError(f"segment {name} must be a list or an object, got {type(value).__name__}")

            parsed = ParsedMessage(segment_list=segment_list)
            parsed.metadata = self.extract_metadata(parsed.segments.get("MSH"))
            parsed.raw = self.generate(parsed)
        except Exception as e:
            raise MessageParseError(str(e)) from e

        return parsed

    def generate(self, message: ParsedMessage) -> str:
        """Render a message back to pipe-delimited text, one segment per line."""
        lines = []
        for segment in message.segment_list:
            fields = segment.fields
            if isinstance(fields, Mapping):
                fields = self.fields_from_mapping(segment.name, fields)
            fields = [str(value) if value is not None else "" for value in fields]
            if segment.name in HEADER_SEGMENTS and len(fields) > 1 and fields[1] == FIELD_SEPARATOR:
                fields = [fields[0]] + fields[2:]
            lines.append(FIELD_SEPARATOR.join(fields))
        return SEGMENT_DELIMITER.join(lines)

    def extract_metadata(self, msh: list[str] | Mapping[str, Any] | None) -> MessageMetadata:
        """
        Extract header metadata from the MSH fields.

        Never raises: absent fields report "Unknown" and an unreadable
        timestamp falls back to the current time.
        """
        try:
            return MessageMetadata(
                message_type=self._get_field_value(msh, MSH_MESSAGE_TYPE),
                version_id=self._get_field_value(msh, MSH_VERSION_ID),
                sending_application=self._get_field_value(msh, MSH_SENDING_APPLICATION),
                sending_facility=self._get_field_value(msh, MSH_SENDING_FACILITY),
                receiving_application=self._get_field_value(msh, MSH_RECEIVING_APPLICATION),
                receiving_facility=self._get_field_value(msh, MSH_RECEIVING_FACILITY),
                control_id=self._get_field_value(msh, MSH_CONTROL_ID),
                processing_id=self._get_field_value(msh, MSH_PROCESSING_ID),
                timestamp=parse_hl7_datetime(self._get_field_value(msh, MSH_DATETIME, default="")),
            )
        except Exception as e:
            logger.debug(f"Error extracting MSH metadata: {e}")
            return MessageMetadata()

    def _normalize_message(self, raw: str) -> str:
        """Trim and map every line ending variant onto the segment delimiter."""
        return LINE_BREAK_PATTERN.sub(SEGMENT_DELIMITER, raw.strip())

    def _parse_segment(self, line: str) -> Segment:
        fields = line.split(FIELD_SEPARATOR)
        name = fields[0]
        if name in HEADER_SEGMENTS and len(fields) > 1:
            fields.insert(1, FIELD_SEPARATOR)
        return Segment(name, fields)

    def _normalize_fields(self, name: str, fields: Any) -> list[str] | dict[str, Any]:
        if isinstance(fields, Mapping):
            return dict(fields)
        fields = ["" if value is None else str(value) for value in fields]
        if not fields:
            return [name]
        if name in HEADER_SEGMENTS and (len(fields) < 2 or fields[1] != FIELD_SEPARATOR):
            fields.insert(1, FIELD_SEPARATOR)
        return fields

    def _is_occurrence_list(self, value: Any) -> bool:
        return (
            isinstance(value, (list, tuple))
            and len(value) > 0
            and all(isinstance(item, (list, tuple, Mapping)) for item in value)
        )

    def fields_from_mapping(self, name: str, mapping: Mapping[str, Any]) -> list[str]:
        """Order an object-shaped segment ("3" or "PID.3" keys) into a field list."""
        positioned: dict[int, str] = {}
        for key, value in mapping.items():
            position = str(key).rsplit(".", 1)[-1]
            if position.isdigit() and int(position) > 0:
                positioned[int(position)] = "" if value is None else str(value)

        fields = [name] + [""] * (max(positioned, default=0))
        for position, value in positioned.items():
            fields[position] = value
        if name in HEADER_SEGMENTS and len(fields) > 1 and not fields[1]:
            fields[1] = FIELD_SEPARATOR
        return fields

    def _get_field_value(
        self,
        segment: list[str] | Mapping[str, Any] | None,
        position: int,
        default: str = UNKNOWN,
    ) -> str:
        """Safely get field N from a field list or an object-shaped segment."""
        if segment is None:
            return default

        if isinstance(segment, Mapping):
            value = segment.get(f"MSH.{position}", segment.get(str(position)))
        elif position < len(segment):
            value = segment[position]
        else:
            value = None

        if value is None or value == "":
            return default
        return str(value)


def parse_hl7_datetime(dt_str: str | None) -> datetime:
    """
    Parse HL7 datetime format (YYYYMMDD[HHMMSS[.ffff]][+/-ZZZZ]).

    Non-digits are dropped before reading the calendar parts; anything that
    does not yield a valid date returns the current time.
    """
    if not dt_str or not isinstance(dt_str, str):
        return datetime.now()

    digits = re.sub(r"[^0-9]", "", dt_str)
    if len(digits) < 8:
        logger.warning(f"Failed to parse HL7 datetime: {dt_str!r}")
        return datetime.now()

    try:
        return datetime(
            year=int(digits[0:4]),
            month=int(digits[4:6]),
            day=int(digits[6:8]),
            hour=int(digits[8:10]) if len(digits) >= 10 else 0,
            minute=int(digits[10:12]) if len(digits) >= 12 else 0,
            second=int(digits[12:14]) if len(digits) >= 14 else 0,
        )
    except ValueError as e:
        logger.warning(f"Failed to parse HL7 datetime {dt_str!r}: {e}")
        return datetime.now()


def is_hl7_timestamp(value: str) -> bool:
    """Check the TS shape and that the date part is a real calendar date."""
    if not isinstance(value, str) or not HL7_TIMESTAMP_PATTERN.match(value):
        return False
    try:
        datetime.strptime(value[:8], "%Y%m%d")
    except ValueError:
        return False
    return True


class HL7BatchParser:
    """Parser for batch files holding several messages.

    Batch and file envelope segments (FHS, BHS, BTS, FTS) are dropped; each
    MSH line starts a new message.
    """

    def __init__(self, parser: HL7Parser | None = None):
        self.parser = parser or HL7Parser()

    def parse_file_content(self, content: str) -> list[ParsedMessage]:
        """
        Parse every message in a batch, in file order.

        Raises:
            MessageParseError: if any message fails to parse
        """
        messages = self.split_messages(content)
        logger.debug(f"Batch contains {len(messages)} message(s)")
        return [self.parser.parse(message) for message in messages]

    def split_messages(self, content: str) -> list[str]:
        """Split batch text into message texts joined with the segment delimiter."""
        normalized = LINE_BREAK_PATTERN.sub(SEGMENT_DELIMITER, content.strip())
        messages: list[list[str]] = []
        for line in normalized.split(SEGMENT_DELIMITER):
            if not line.strip() or line.split(FIELD_SEPARATOR, 1)[0] in BATCH_ENVELOPE_SEGMENTS:
                continue
            # Lines ahead of the first MSH are kept as a message of their own
            if line.startswith(f"MSH{FIELD_SEPARATOR}") or not messages:
                messages.append([line])
            else:
                messages[-1].append(line)
        return [SEGMENT_DELIMITER.join(segments) for segments in messages]
