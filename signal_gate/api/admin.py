"""
Administration endpoints: users, subscriptions, roles and metrics.
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends

from signal_gate.api.dependencies import get_services, require_admin
from signal_gate.api.schemas import (
    GrantRequest,
    LegacySubscriptionRequest,
    RoleRequest,
    UserListResponse,
)
from signal_gate.models.account import AccountProfile
from signal_gate.services.container import ServiceContainer
from signal_gate.services.token_service import TokenClaims
from signal_gate.utils.logging import get_logger
from signal_gate.utils.monitoring import get_metrics_collector

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/users", response_model=UserListResponse)
async def list_users(services: ServiceContainer = Depends(get_services)) -> UserListResponse:
    users = await services.accounts.list_users()
    return UserListResponse(users=users, count=len(users))


@router.post("/users/{user_id}/subscription/grant", response_model=AccountProfile)
async def grant_subscription(
    user_id: int,
    body: GrantRequest,
    admin: TokenClaims = Depends(require_admin),
    services: ServiceContainer = Depends(get_services),
) -> AccountProfile:
    logger.info(f"Admin {admin.account_id} granting {body.duration_days} days to account {user_id}")
    return await services.accounts.grant_subscription(user_id, body.duration_days)


@router.post("/users/{user_id}/subscription/revoke", response_model=AccountProfile)
async def revoke_subscription(
    user_id: int,
    admin: TokenClaims = Depends(require_admin),
    services: ServiceContainer = Depends(get_services),
) -> AccountProfile:
    logger.info(f"Admin {admin.account_id} revoking subscription of account {user_id}")
    return await services.accounts.revoke_subscription(user_id)


@router.put("/users/{user_id}/subscription", response_model=AccountProfile)
async def update_subscription(
    user_id: int,
    body: LegacySubscriptionRequest,
    services: ServiceContainer = Depends(get_services),
) -> AccountProfile:
    """Older ``{status, expiry_days}`` form; ``inactive``/``disabled`` revoke."""
    return await services.accounts.set_subscription(user_id, body.status, body.expiry_days)


@router.put("/users/{user_id}/role", response_model=AccountProfile)
async def update_role(
    user_id: int,
    body: RoleRequest,
    admin: TokenClaims = Depends(require_admin),
    services: ServiceContainer = Depends(get_services),
) -> AccountProfile:
    logger.info(f"Admin {admin.account_id} setting role of account {user_id} to {body.role.value}")
    return await services.accounts.set_role(user_id, body.role)


@router.get("/metrics")
async def get_metrics() -> Dict[str, Any]:
    """In-process counters and request timings."""
    return get_metrics_collector().get_summary()
