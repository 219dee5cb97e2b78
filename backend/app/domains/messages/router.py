"""API routes for the messages domain."""
import logging

from fastapi import APIRouter, HTTPException, status

from app.core.dependencies import MessageServiceDep, ProfileRegistryDep, ValidationEngineDep
from app.core.exceptions import InvalidFieldValueError, InvalidPathError, MessageParseError, ProfileNotFoundError
from app.domains.messages.schemas import (
    BatchParseRequest,
    BatchParseResponse,
    EditFieldRequest,
    ParsedMessageResponse,
    ParseMessageRequest,
)
from app.domains.validation.schemas import ValidateMessageRequest, ValidationReport
from app.domains.validation.service import ValidationContext

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/parse", response_model=ParsedMessageResponse)
def parse_message(request: ParseMessageRequest, service: MessageServiceDep):
    """Parse raw HL7 text into segments and header metadata."""
    try:
        parsed = service.parse(request.raw_message)
    except MessageParseError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return ParsedMessageResponse.from_parsed(parsed, request.raw_message)


@router.post("/parse-batch", response_model=BatchParseResponse)
def parse_batch(request: BatchParseRequest, service: MessageServiceDep):
    """
    Parse a batch file into its messages, in file order.

    Envelope segments (FHS, BHS, BTS, FTS) are dropped. A message that fails
    to parse fails the whole batch.
    """
    try:
        messages = service.parse_batch(request.content)
    except MessageParseError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info(f"Parsed batch of {len(messages)} message(s)")
    return BatchParseResponse(
        message_count=len(messages),
        messages=[ParsedMessageResponse.from_parsed(message, message.raw) for message in messages],
    )


@router.post("/edit", response_model=ParsedMessageResponse)
def edit_field(request: EditFieldRequest, service: MessageServiceDep):
    """
    Set one field of a message and return the regenerated message.

    The path addresses a single field, optionally of a repeated segment
    ("OBX[2].5").
    """
    try:
        parsed = service.parse(request.raw_message)
        edited = service.edit_field(parsed, request.path, request.value)
    except (MessageParseError, InvalidPathError, InvalidFieldValueError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return ParsedMessageResponse.from_parsed(edited, service.generate(edited))


@router.post("/validate", response_model=ValidationReport)
async def validate_message(
    request: ValidateMessageRequest,
    service: MessageServiceDep,
    engine: ValidationEngineDep,
    profiles: ProfileRegistryDep,
):
    """
    Validate a message against structure, an optional rule set, an optional
    conformance profile, and generic content checks.
    """
    try:
        message = service.load_input(request.raw_message, request.parsed_message)
    except MessageParseError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if message is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No message provided for validation. Provide parsedMessage or rawMessage",
        )

    custom_schema = None
    if request.profile:
        try:
            custom_schema = profiles.get(request.profile)
        except ProfileNotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return await engine.validate_message(
        ValidationContext(
            message=message,
            rule_set=request.rule_set,
            custom_schema=custom_schema,
        )
    )
