from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from app.core.config import settings
from app.domains.messages.hl7 import HL7Parser
from app.domains.messages.service import MessageService
from app.domains.rules.conditions import ConditionEvaluator
from app.domains.rules.engine import RulesEngine
from app.domains.validation.profiles import ProfileRegistry
from app.domains.validation.service import ValidationEngine


def get_parser() -> HL7Parser:
    return HL7Parser()


def get_message_service(parser: Annotated[HL7Parser, Depends(get_parser)]) -> MessageService:
    return MessageService(parser)


def get_rules_engine() -> RulesEngine:
    return RulesEngine(ConditionEvaluator())


def get_validation_engine(rules_engine: Annotated[RulesEngine, Depends(get_rules_engine)]) -> ValidationEngine:
    return ValidationEngine(rules_engine)


@lru_cache
def get_profile_registry() -> ProfileRegistry:
    registry = ProfileRegistry()
    if settings.PROFILES_DIR is not None:
        registry.load_directory(settings.PROFILES_DIR)
    return registry


MessageServiceDep = Annotated[MessageService, Depends(get_message_service)]
RulesEngineDep = Annotated[RulesEngine, Depends(get_rules_engine)]
ValidationEngineDep = Annotated[ValidationEngine, Depends(get_validation_engine)]
ProfileRegistryDep = Annotated[ProfileRegistry, Depends(get_profile_registry)]
