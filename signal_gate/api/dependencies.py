"""
FastAPI dependencies for authentication and authorization.

Order matters: the bearer token is verified first, and role or
subscription checks only run for an authenticated caller.
"""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from signal_gate.exceptions import AuthenticationError
from signal_gate.services.access_control import ReadDecision, require_manage
from signal_gate.services.container import ServiceContainer
from signal_gate.services.token_service import TokenClaims

# JWT token security; missing credentials are reported by get_current_principal
security = HTTPBearer(auto_error=False)


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    services: ServiceContainer = Depends(get_services),
) -> TokenClaims:
    """Verified claims of the caller's bearer token."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Authentication required")
    return services.tokens.verify(credentials.credentials)


async def require_admin(principal: TokenClaims = Depends(get_current_principal)) -> TokenClaims:
    require_manage(principal.role)
    return principal


async def require_signal_reader(
    principal: TokenClaims = Depends(get_current_principal),
    services: ServiceContainer = Depends(get_services),
) -> ReadDecision:
    """Current subscription check for signal reads; admins always pass."""
    return await services.access_control.require_signal_access(principal.account_id, principal.role)
