from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header

from src.app.config import Settings, get_settings
from src.adapters.auth import resolve_auth_context
from src.adapters.data_store import DataStore, MongoDataStore
from src.adapters.gemini_client import GeminiGateway
from src.adapters.mongo_client import MongoClientFactory
from src.ingestion.pipeline import IngestionPipeline
from src.orchestrator.graph import ChatOrchestrator
from src.orchestrator.state import AuthContext
from src.services.booking_assistant import BookingAssistant
from src.services.chat_tools import ChatTools
from src.services.locales import Translator, load_translator
from src.services.rag import KnowledgeRetriever
from src.services.rate_limiter import RateLimiter
from src.services.route_map import render_route_map_markdown
from src.services.session_store import SessionStore
from src.services.tool_orchestrator import ToolOrchestrator


@lru_cache(maxsize=1)
def get_mongo_factory() -> MongoClientFactory:
    settings = get_settings()
    return MongoClientFactory(settings.mongo_uri, settings.mongo_database)


@lru_cache(maxsize=1)
def get_data_store() -> DataStore:
    return MongoDataStore(get_mongo_factory().get_database())


@lru_cache(maxsize=1)
def get_knowledge_retriever() -> KnowledgeRetriever:
    settings = get_settings()
    pipeline = IngestionPipeline(settings.knowledge_dir, route_map_renderer=render_route_map_markdown)
    return KnowledgeRetriever(pipeline)


@lru_cache(maxsize=1)
def get_translator() -> Translator:
    return load_translator()


@lru_cache(maxsize=1)
def get_gemini_gateway() -> GeminiGateway:
    settings = get_settings()
    return GeminiGateway(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        timeout_seconds=settings.gemini_timeout_seconds,
        temperature=settings.gemini_temperature,
        max_output_tokens=settings.gemini_max_output_tokens,
    )


@lru_cache(maxsize=1)
def get_orchestrator() -> ChatOrchestrator:
    settings = get_settings()
    store = get_data_store()
    tools = ChatTools(store)
    return ChatOrchestrator(
        retriever=get_knowledge_retriever(),
        tool_orchestrator=ToolOrchestrator(tools),
        booking_assistant=BookingAssistant(store.list_active_waste_categories, get_translator()),
        reply_generator=get_gemini_gateway(),
        session_store=SessionStore(
            ttl_seconds=settings.session_ttl_hours * 60 * 60,
            max_messages=settings.session_max_turns * 2,
            max_sessions=settings.session_max_entries,
        ),
        rate_limiter=RateLimiter(
            max_requests=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        ),
        auth_resolver=lambda header: resolve_auth_context(header, settings.jwt_access_secret, settings.jwt_algorithm),
        brand_name="Trash2Cash",
        knowledge_top_k=settings.knowledge_top_k,
        max_history_messages=settings.max_history_messages,
    )


def get_auth_context(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> AuthContext:
    return resolve_auth_context(authorization, settings.jwt_access_secret, settings.jwt_algorithm)
