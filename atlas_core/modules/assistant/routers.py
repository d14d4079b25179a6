# atlas_core/modules/assistant/routers.py
from typing import Optional

from fastapi import APIRouter, Body, Depends

from atlas_core.core.security import CurrentSession
from .models import ChatRequest, ChatResponse
from .services import AssistantService, get_assistant_service

router = APIRouter()


@router.post("/chat", response_model=ChatResponse, tags=["Assistant"])
async def chat(
    session: CurrentSession,
    payload: Optional[ChatRequest] = Body(None),
    assistant_service: AssistantService = Depends(get_assistant_service),
):
    return await assistant_service.chat(payload or ChatRequest(), person_id=session.person_id)
