from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from langgraph.graph import END, StateGraph

from src.orchestrator.state import (
    AuthContext,
    ChatSession,
    ChatTurnRequest,
    ChatTurnResult,
    ConversationState,
)
from src.services.booking_assistant import BookingAssistant
from src.services.errors import InvalidChatRequest
from src.services.intent_rules import determine_mode
from src.services.language import resolve_language
from src.services.prompts import (
    build_suggested_actions,
    build_system_prompt,
    collect_sources,
    finalize_actions,
    normalize_page_context,
)
from src.services.rag import KnowledgeRetriever
from src.services.rate_limiter import RateLimiter
from src.services.session_store import SessionStore, resolve_session_key
from src.services.tool_orchestrator import ToolOrchestrator

logger = logging.getLogger(__name__)


class ReplyGenerator(Protocol):
    def generate(self, system_prompt: str, history: Sequence[Dict[str, str]]) -> str:  # pragma: no cover - interface
        ...


def extract_latest_user_message(messages: Sequence[Dict[str, str]]) -> str:
    for message in reversed(messages):
        content = (message.get("content") or "").strip()
        if message.get("role") == "user" and content:
            return content
    raise InvalidChatRequest("At least one user message is required")


def seed_history(messages: Sequence[Dict[str, str]], question: str, limit: int) -> List[Dict[str, str]]:
    """Build starting history from the request itself when no session exists yet."""
    incoming = [
        {"role": message["role"], "content": message["content"].strip()}
        for message in messages
        if message.get("role") in ("user", "assistant") and (message.get("content") or "").strip()
    ]
    for index in range(len(incoming) - 1, -1, -1):
        if incoming[index]["role"] == "user" and incoming[index]["content"] == question:
            return incoming[:index][-limit:]
    return incoming[-limit:]


def _coerce_state(value: Any) -> ConversationState:
    if isinstance(value, ConversationState):
        return value
    if isinstance(value, dict):
        known = {name: value[name] for name in ConversationState.__dataclass_fields__ if name in value}
        return ConversationState(**known)
    raise TypeError(f"Unsupported state result from graph: {type(value)!r}")


class ChatOrchestrator:
    """LangGraph pipeline for one assistant chat turn, plus the session bookkeeping around it."""

    def __init__(
        self,
        *,
        retriever: KnowledgeRetriever,
        tool_orchestrator: ToolOrchestrator,
        booking_assistant: BookingAssistant,
        reply_generator: ReplyGenerator,
        session_store: SessionStore,
        rate_limiter: RateLimiter,
        auth_resolver: Callable[[Optional[str]], AuthContext],
        brand_name: str = "Trash2Cash",
        knowledge_top_k: int = 5,
        max_history_messages: int = 20,
    ) -> None:
        self._retriever = retriever
        self._tools = tool_orchestrator
        self._booking = booking_assistant
        self._llm = reply_generator
        self._sessions = session_store
        self._rate_limiter = rate_limiter
        self._auth_resolver = auth_resolver
        self._brand_name = brand_name
        self._top_k = knowledge_top_k
        self._max_history = max_history_messages
        self._graph = self._build_graph().compile()

    def _build_graph(self) -> StateGraph:
        graph = StateGraph(ConversationState)

        graph.add_node("booking_assistant", self._booking_node)
        graph.add_node("knowledge_retrieval", self._retrieval_node)
        graph.add_node("tool_calls", self._tools_node)
        graph.add_node("generate_reply", self._generate_node)

        graph.set_entry_point("booking_assistant")
        graph.add_conditional_edges(
            "booking_assistant",
            self._booking_router,
            {
                True: END,
                False: "knowledge_retrieval",
            },
        )
        graph.add_edge("knowledge_retrieval", "tool_calls")
        graph.add_edge("tool_calls", "generate_reply")
        graph.add_edge("generate_reply", END)

        return graph

    def _booking_node(self, state: Any) -> Dict[str, Any]:
        current = _coerce_state(state)
        result = self._booking.handle_turn(
            current.question,
            current.booking_state,
            current.auth,
            current.language,
        )
        if result is None:
            return {"booking_handled": False}
        return {
            "booking_handled": True,
            "booking_state": result.state,
            "booking_draft": result.draft,
            "booking_actions": list(result.suggested_actions),
            "reply": result.reply,
        }

    def _booking_router(self, state: Any) -> bool:
        return bool(_coerce_state(state).booking_handled)

    def _retrieval_node(self, state: Any) -> Dict[str, Any]:
        current = _coerce_state(state)
        return {"knowledge_chunks": self._retriever.search(current.question, self._top_k)}

    def _tools_node(self, state: Any) -> Dict[str, Any]:
        current = _coerce_state(state)
        return {
            "catalog_context": self._tools.collect_catalog_context(current.question),
            "data_context": self._tools.collect_data_context(current.question, current.auth, current.mode),
        }

    def _generate_node(self, state: Any) -> Dict[str, Any]:
        current = _coerce_state(state)
        system_prompt = build_system_prompt(
            brand_name=self._brand_name,
            auth=current.auth,
            mode=current.mode,
            language=current.language,
            current_route=current.current_route,
            page_context=current.page_context,
            knowledge_chunks=current.knowledge_chunks,
            catalog_context=current.catalog_context,
            data_context=current.data_context,
        )
        conversation = [*current.history, {"role": "user", "content": current.question}][-self._max_history :]
        return {"reply": self._llm.generate(system_prompt, conversation).strip()}

    def run(self, state: ConversationState) -> ConversationState:
        result = self._graph.invoke(state.as_payload())
        return _coerce_state(result)

    def handle(self, request: ChatTurnRequest) -> ChatTurnResult:
        self._rate_limiter.check_and_increment(request.client_id)
        if not request.messages:
            raise InvalidChatRequest("messages are required")

        question = extract_latest_user_message(request.messages)
        auth = self._auth_resolver(request.authorization)
        mode = determine_mode(question)
        page_context = normalize_page_context(request.page_context)
        current_route = (request.current_route or "").strip()
        logger.debug(
            "Chat turn client=%s messages=%d question_chars=%d context_chars=%d",
            request.client_id,
            len(request.messages),
            len(question),
            len(page_context["textContent"]),
        )

        self._sessions.sweep_expired()
        session_key = resolve_session_key(request.session_id, auth, request.client_id)
        with self._sessions.lock(session_key):
            session = self._sessions.get(session_key)
            if session is not None:
                history = session.history[-self._sessions.max_messages :]
            else:
                history = seed_history(request.messages, question, self._sessions.max_messages)
            language = resolve_language(
                request.preferred_language,
                question,
                request.messages,
                session.language if session else None,
            )

            final_state = self.run(
                ConversationState(
                    question=question,
                    auth=auth,
                    mode=mode,
                    language=language,
                    history=history,
                    current_route=current_route,
                    page_context=page_context,
                    booking_state=session.booking_assistant if session else None,
                )
            )

            reply = final_state.reply.strip()
            self._sessions.put(
                session_key,
                ChatSession(
                    history=[
                        *history,
                        {"role": "user", "content": question},
                        {"role": "assistant", "content": reply},
                    ],
                    language=language,
                    booking_assistant=final_state.booking_state,
                ),
            )

        if final_state.booking_handled:
            return ChatTurnResult(
                reply=reply,
                mode=mode,
                response_language=language,
                suggested_actions=finalize_actions(final_state.booking_actions, current_route),
                booking_draft=final_state.booking_draft,
            )

        return ChatTurnResult(
            reply=reply,
            mode=mode,
            response_language=language,
            sources=collect_sources(final_state.knowledge_chunks, final_state.catalog_context, final_state.data_context),
            suggested_actions=build_suggested_actions(
                question,
                auth.role,
                current_route,
                final_state.catalog_context,
                final_state.data_context,
            ),
            tool_calls=[*final_state.catalog_context.called_tools, *final_state.data_context.called_tools],
        )
