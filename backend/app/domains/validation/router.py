"""API routes for the validation domain."""
from fastapi import APIRouter

from app.core.dependencies import ProfileRegistryDep
from app.domains.validation.schemas import ProfileListResponse

router = APIRouter()


@router.get("/profiles", response_model=ProfileListResponse)
def list_profiles(profiles: ProfileRegistryDep):
    """Names of the conformance profiles a validation request can use."""
    return ProfileListResponse(profiles=profiles.names())
