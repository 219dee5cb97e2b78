"""API routes for the rules domain."""
import logging

from fastapi import APIRouter, HTTPException, status

from app.core.dependencies import MessageServiceDep, RulesEngineDep
from app.core.exceptions import MessageParseError
from app.domains.messages.hl7 import locate_field
from app.domains.rules.schemas import RuleExecutionRequest, RuleExecutionResponse, RuleViolation

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/execute", response_model=RuleExecutionResponse)
def execute_rules(request: RuleExecutionRequest, service: MessageServiceDep, engine: RulesEngineDep):
    """
    Execute a rule set against a message.

    Returns per-rule results with a summary, highlighting rules for
    violated "highlight" rules, and one violation entry per violated rule.
    """
    try:
        message = service.load_input(request.raw_message, request.parsed_message)
    except MessageParseError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if message is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No message provided. Provide parsedMessage or rawMessage",
        )

    execution = engine.execute_rule_set(message, request.rule_set)

    validation_errors = []
    for result in execution.results:
        if not result.violated:
            continue
        segment, field = locate_field(result.target_path)
        validation_errors.append(
            RuleViolation(
                segment=segment,
                field=field,
                message=result.action_detail or f"Rule violation: {result.rule_name}",
                severity=result.severity,
                rule_name=result.rule_name,
            )
        )

    return RuleExecutionResponse(
        rule_set_name=request.rule_set.name,
        execution=execution,
        highlighting=engine.generate_highlighting_rules(execution.results),
        validation_errors=validation_errors,
    )
