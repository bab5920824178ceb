from __future__ import annotations

import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from src.app.config import Settings
from src.app.dependencies import get_auth_context, get_knowledge_retriever, get_orchestrator, get_settings
from src.orchestrator.graph import ChatOrchestrator
from src.orchestrator.state import AuthContext, ChatTurnRequest
from src.schemas.chat import ChatRequest, ChatResponse, KnowledgeReloadStatus, SuggestedActionModel
from src.services.errors import InvalidChatRequest, LLMRequestFailed, RateLimitExceeded
from src.services.rag import KnowledgeRetriever

logger = logging.getLogger(__name__)

router = APIRouter()


def _client_id(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


@router.get("/health", status_code=status.HTTP_200_OK)
def health(settings: Settings = Depends(get_settings)) -> dict:
    return {"app": settings.app_name, "status": "ok"}


@router.post("/api/v1/chat", response_model=ChatResponse, response_model_exclude_none=True)
def chat(
    payload: ChatRequest,
    request: Request,
    authorization: Optional[str] = Header(default=None),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> ChatResponse:
    try:
        result = orchestrator.handle(
            ChatTurnRequest(
                messages=[message.model_dump() for message in payload.messages],
                client_id=_client_id(request),
                authorization=authorization,
                session_id=payload.session_id,
                current_route=payload.current_route or "",
                preferred_language=payload.preferred_language,
                page_context=payload.page_context.as_context() if payload.page_context else None,
            )
        )
    except InvalidChatRequest as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except RateLimitExceeded as exc:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=str(exc),
            headers={"Retry-After": str(max(1, math.ceil(exc.retry_after)))},
        )
    except LLMRequestFailed as exc:
        logger.warning("Chat turn aborted: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="The assistant could not answer right now. Please try again.",
        )
    return ChatResponse(
        reply=result.reply,
        mode=result.mode.value,
        sources=result.sources,
        suggested_actions=[SuggestedActionModel(**action.to_dict()) for action in result.suggested_actions],
        tool_calls=result.tool_calls,
        response_language=result.response_language.value,
        booking_draft=result.booking_draft,
    )


@router.post("/api/v1/knowledge/reload", response_model=KnowledgeReloadStatus)
def reload_knowledge(
    auth: AuthContext = Depends(get_auth_context),
    retriever: KnowledgeRetriever = Depends(get_knowledge_retriever),
) -> KnowledgeReloadStatus:
    if not auth.is_authenticated:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    if not auth.role.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    corpus = retriever.reload()
    return KnowledgeReloadStatus(files=len(corpus.files), chunks=len(corpus.chunks))
