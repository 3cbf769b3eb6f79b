"""
Endpoints for the signed-in user.
"""
from fastapi import APIRouter, Depends

from signal_gate.api.dependencies import get_current_principal, get_services
from signal_gate.models.account import AccountProfile
from signal_gate.services.container import ServiceContainer
from signal_gate.services.token_service import TokenClaims

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.get("/me", response_model=AccountProfile)
async def get_profile(
    principal: TokenClaims = Depends(get_current_principal),
    services: ServiceContainer = Depends(get_services),
) -> AccountProfile:
    """Profile with the subscription status evaluated now."""
    return await services.accounts.get_profile(principal.account_id)
