"""
Signal endpoints.

Reads are open to admins and to accounts whose subscription currently
grants access. Every write requires the admin role.
"""
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, Response, status

from signal_gate.api.dependencies import (
    get_current_principal,
    get_services,
    require_admin,
    require_signal_reader,
)
from signal_gate.api.schemas import ApprovalRequest
from signal_gate.exceptions import NotFoundError
from signal_gate.models.signal import Signal
from signal_gate.services.access_control import ReadDecision
from signal_gate.services.container import ServiceContainer
from signal_gate.services.token_service import TokenClaims

router = APIRouter(prefix="/api/v1/signals", tags=["signals"])


@router.get("", response_model=List[Signal])
async def list_signals(
    principal: TokenClaims = Depends(get_current_principal),
    services: ServiceContainer = Depends(get_services),
) -> List[Signal]:
    """All signals for admins, approved signals for subscribers. Newest first."""
    return await services.signals.list_for(principal.account_id, principal.role)


@router.get("/{signal_id}", response_model=Signal)
async def get_signal(
    signal_id: int,
    decision: ReadDecision = Depends(require_signal_reader),
    services: ServiceContainer = Depends(get_services),
) -> Signal:
    signal = await services.signals.get(signal_id)
    if decision.approved_only and not signal.is_approved:
        raise NotFoundError("Signal")
    return signal


@router.post("", response_model=Signal, status_code=status.HTTP_201_CREATED)
async def create_signal(
    fields: Dict[str, Any] = Body(...),
    admin: TokenClaims = Depends(require_admin),
    services: ServiceContainer = Depends(get_services),
) -> Signal:
    """
    Create an unapproved signal.

    Accepts ``direction``/``entry_price``/``stop_loss``/``take_profit`` or
    the short forms ``type``/``entry``/``sl``/``tp``.
    """
    return await services.signals.create(fields)


@router.put("/{signal_id}", response_model=Signal)
async def update_signal(
    signal_id: int,
    fields: Dict[str, Any] = Body(...),
    admin: TokenClaims = Depends(require_admin),
    services: ServiceContainer = Depends(get_services),
) -> Signal:
    return await services.signals.update(signal_id, fields)


@router.delete("/{signal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_signal(
    signal_id: int,
    admin: TokenClaims = Depends(require_admin),
    services: ServiceContainer = Depends(get_services),
) -> Response:
    await services.signals.delete(signal_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{signal_id}/approval", response_model=Signal)
async def set_signal_approval(
    signal_id: int,
    body: ApprovalRequest,
    admin: TokenClaims = Depends(require_admin),
    services: ServiceContainer = Depends(get_services),
) -> Signal:
    """Approve or unapprove. The first approval emails active subscribers in the background."""
    return await services.signals.set_approval(signal_id, body.approved)
