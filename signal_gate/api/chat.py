"""
AI coach endpoint. Requires a valid token; no subscription check.
"""
from fastapi import APIRouter, Depends

from signal_gate.api.dependencies import get_current_principal, get_services
from signal_gate.api.schemas import ChatRequest, ChatResponse
from signal_gate.services.container import ServiceContainer
from signal_gate.services.token_service import TokenClaims

router = APIRouter(prefix="/api/v1/chat", tags=["chat"])


@router.post("/ask", response_model=ChatResponse)
async def ask_assistant(
    body: ChatRequest,
    principal: TokenClaims = Depends(get_current_principal),
    services: ServiceContainer = Depends(get_services),
) -> ChatResponse:
    answer = await services.chat.ask(body.prompt)
    return ChatResponse(answer=answer)
