"""Pydantic schemas for the messages domain."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.domains.messages.hl7 import MessageMetadata, ParsedMessage


class MessageModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MetadataResponse(MessageModel):
    message_type: str
    version_id: str
    sending_application: str
    sending_facility: str
    receiving_application: str
    receiving_facility: str
    control_id: str
    processing_id: str
    timestamp: datetime

    @classmethod
    def from_metadata(cls, metadata: MessageMetadata) -> "MetadataResponse":
        return cls(
            message_type=metadata.message_type,
            version_id=metadata.version_id,
            sending_application=metadata.sending_application,
            sending_facility=metadata.sending_facility,
            receiving_application=metadata.receiving_application,
            receiving_facility=metadata.receiving_facility,
            control_id=metadata.control_id,
            processing_id=metadata.processing_id,
            timestamp=metadata.timestamp,
        )


class ParseMessageRequest(MessageModel):
    raw_message: str


class ParsedMessageResponse(MessageModel):
    # Segment name -> field lists of every occurrence, in message order
    segments: dict[str, list[list[str] | dict]]
    metadata: MetadataResponse
    raw_message: str

    @classmethod
    def from_parsed(cls, parsed: ParsedMessage, raw_message: str) -> "ParsedMessageResponse":
        segments: dict[str, list[list[str] | dict]] = {}
        for segment in parsed.segment_list:
            segments.setdefault(segment.name, []).append(segment.fields)
        return cls(
            segments=segments,
            metadata=MetadataResponse.from_metadata(parsed.metadata),
            raw_message=raw_message,
        )


class EditFieldRequest(MessageModel):
    raw_message: str
    path: str  # e.g. "PID.5" or "OBX[2].5"
    value: str


class BatchParseRequest(MessageModel):
    content: str  # one or more messages, optionally wrapped in FHS/BHS envelopes


class BatchParseResponse(MessageModel):
    message_count: int
    messages: list[ParsedMessageResponse]
