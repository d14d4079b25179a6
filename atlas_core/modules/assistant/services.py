# atlas_core/modules/assistant/services.py
from typing import Any, Dict, List, Optional

from fastapi import Depends, HTTPException, Request, status
from loguru import logger

from atlas_core.core.config import settings
from atlas_core.services.llm_client import OpenAIClient, OpenAIMessage, get_llm_client
from atlas_core.modules.assistant.context import (
    Fetcher,
    build_context,
    context_snippet,
    gather_sources,
    make_internal_fetcher,
)
from atlas_core.modules.assistant.models import SCOPES, ChatRequest, ChatResponse, HistoryItem

HISTORY_TURNS = 6

SYSTEM_PROMPT = (
    "Eres Atlas Copilot, analista de negocio de Atlas Suite. "
    "{role_hint}"
    "Habla en español, tono amable y conciso. Responde en bullets cortos (3-6). "
    "Sé directo: dato → conclusión → siguiente acción. "
    "Prioriza impacto alto primero. Ahorra tokens: sin relleno ni repeticiones. "
    "Si falta un dato, dilo explícitamente y sugiere qué medir."
)
UNKNOWN_ROLE_HINT = (
    "No conoces el rol ni la sucursal exacta del usuario, "
    "responde para un perfil de jefatura o administración. "
)


def normalize_scope(raw: Any) -> str:
    return raw if isinstance(raw, str) and raw in SCOPES else "general"


def recent_history(raw: Any) -> List[HistoryItem]:
    """Last HISTORY_TURNS well-formed turns; anything malformed is dropped."""
    if not isinstance(raw, list):
        return []
    turns = []
    for entry in raw:
        if isinstance(entry, dict) and entry.get("role") in ("user", "assistant") and isinstance(entry.get("content"), str):
            turns.append(HistoryItem(role=entry["role"], content=entry["content"]))
    return turns[-HISTORY_TURNS:]


def role_hint(me: Optional[Dict[str, Any]]) -> str:
    if isinstance(me, dict) and me.get("ok") and me.get("role"):
        hint = f'El usuario actual tiene el rol interno "{me["role"]}"'
        if me.get("site_name"):
            return hint + f' y trabaja en la sucursal "{me["site_name"]}". '
        return hint + ". "
    return UNKNOWN_ROLE_HINT


def build_messages(
    message: str, scope: str, history: List[HistoryItem], snippet: str, me: Optional[Dict[str, Any]]
) -> List[OpenAIMessage]:
    messages: List[OpenAIMessage] = [{"role": "system", "content": SYSTEM_PROMPT.format(role_hint=role_hint(me))}]
    messages.extend(turn.model_dump() for turn in history)
    messages.append({
        "role": "user",
        "content": (
            f"Pregunta del usuario (scope: {scope}):\n{message}\n\n"
            f"Datos recientes del negocio (JSON, resumidos):\n{snippet}"
        ),
    })
    return messages


class AssistantService:
    def __init__(self, llm: OpenAIClient, fetch: Fetcher):
        self.llm = llm
        self.fetch = fetch

    async def chat(self, request: ChatRequest, person_id: str = "") -> ChatResponse:
        log = logger.bind(service="AssistantService", person_id=person_id)

        message = request.message
        if not isinstance(message, str) or not message:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="message_required")
        if not self.llm.is_configured:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="missing_openai_api_key")

        scope = normalize_scope(request.scope)
        try:
            sources = await gather_sources(self.fetch, scope)
            snippet = context_snippet(build_context(sources))
            messages = build_messages(message, scope, recent_history(request.history), snippet, sources.get("me"))
            completion = await self.llm.get_completion(messages, model=settings.OPENAI_MODEL, temperature=0.2)
        except Exception as e:
            log.exception(f"Assistant failed while preparing the answer: {e}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="assistant_failed")

        if completion.error:
            log.error(f"LLM provider error: {completion.error.message}")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="assistant_failed")

        log.info(f"Assistant answered (scope={scope}, context={len(snippet)} chars).")
        return ChatResponse(answer=completion.text, scope=scope)


def internal_origin(request: Request) -> str:
    return (settings.APP_URL or str(request.base_url)).rstrip("/")


async def get_internal_fetcher(request: Request) -> Fetcher:
    return make_internal_fetcher(internal_origin(request), request.headers.get("cookie"))


async def get_assistant_service(
    llm: OpenAIClient = Depends(get_llm_client),
    fetch: Fetcher = Depends(get_internal_fetcher),
) -> AssistantService:
    return AssistantService(llm, fetch)
