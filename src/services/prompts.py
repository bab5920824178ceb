from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence

from src.orchestrator.intents import ChatMode, Language, Role
from src.orchestrator.state import AuthContext, SuggestedAction, ToolContext
from src.services import intent_rules
from src.services.rag import RetrievedChunk, format_knowledge_block
from src.services.route_map import list_actions_for_role
from src.services.tool_orchestrator import (
    ADMIN_BOOKINGS_ACTION,
    BOOKING_HISTORY_ACTION,
    DRIVER_BOOKINGS_ACTION,
    PENDING_PICKUPS_ACTION,
    REWARDS_ACTION,
    notifications_action,
)

MAX_SOURCES = 6
MAX_SUGGESTED_ACTIONS = 6
DEFAULT_ROLE_ACTIONS = 4

PAGE_CONTEXT_LIMITS = {"url": 500, "title": 200, "metaDescription": 500, "textContent": 8000}

_NOT_PROVIDED = "(not provided)"


def normalize_page_context(page_context: Optional[Dict[str, Optional[str]]]) -> Dict[str, str]:
    source = page_context or {}
    return {name: (source.get(name) or "")[:limit] for name, limit in PAGE_CONTEXT_LIMITS.items()}


def build_system_prompt(
    *,
    brand_name: str,
    auth: AuthContext,
    mode: ChatMode,
    language: Language,
    current_route: str,
    page_context: Dict[str, str],
    knowledge_chunks: List[RetrievedChunk],
    catalog_context: ToolContext,
    data_context: ToolContext,
) -> str:
    catalog_block = "\n\n".join(catalog_context.blocks) or "No dynamic DB knowledge context used."
    data_block = "\n\n".join(data_context.blocks) or "No private data tools executed for this request."
    role_line = auth.role.value if auth.is_authenticated else Role.GUEST.value

    return "\n".join(
        [
            f"You are the {brand_name} Whole Website Assistant.",
            "Answer using the whole-website knowledge context and tool outputs below, not only current-page text.",
            "",
            "Hard rules:",
            "1) Role privacy is strict. Never reveal private data across users or roles.",
            "2) Tool outputs are authoritative for personal/account data.",
            "3) If data is unavailable, missing, or restricted, say that clearly and give the safest next step.",
            "4) Do not hallucinate features, rules, prices, statuses, or metrics.",
            '5) When using knowledge snippets, cite source names inline like "From rewards.md > Rewards Rules".',
            "6) Ask follow-up questions only when required to proceed safely.",
            "7) Respond in the requested language while preserving system constants.",
            "",
            "Language rules:",
            f"- Primary response language: {language.display_name} ({language.value}).",
            "- If the user explicitly asks to switch language, follow that request.",
            "- Keep route paths, booking status enums, IDs, and currency symbols unchanged.",
            "- Do not transliterate unless the user asks for transliteration.",
            "",
            "Requester context:",
            f"- Authenticated: {'yes' if auth.is_authenticated else 'no'}",
            f"- Role: {role_line}",
            f"- User ID: {auth.user_id or '(none)'}",
            f"- Current route: {current_route.strip() or _NOT_PROVIDED}",
            f"- Chat mode: {mode.value}",
            "",
            "Current page context (supplemental only):",
            f"- URL: {page_context.get('url') or _NOT_PROVIDED}",
            f"- Title: {page_context.get('title') or _NOT_PROVIDED}",
            f"- Meta description: {page_context.get('metaDescription') or _NOT_PROVIDED}",
            f"- Visible text excerpt: {page_context.get('textContent') or _NOT_PROVIDED}",
            "",
            "Knowledge base snippets:",
            format_knowledge_block(knowledge_chunks),
            "",
            "Dynamic DB knowledge snippets:",
            catalog_block,
            "",
            "Private data tool outputs:",
            data_block,
            "",
            "Response style:",
            "- Be concise and practical.",
            "- If refusing data access, explain scope and offer an allowed route.",
            "- Include deep-link route hints when helpful.",
        ]
    )


def collect_sources(
    knowledge_chunks: Iterable[RetrievedChunk],
    catalog_context: ToolContext,
    data_context: ToolContext,
) -> List[str]:
    ordered = [chunk.source_label for chunk in knowledge_chunks]
    ordered.extend(catalog_context.sources)
    ordered.extend(data_context.sources)
    return list(dict.fromkeys(ordered))[:MAX_SOURCES]


def _intent_actions(question: str, role: Role) -> List[SuggestedAction]:
    q = question.lower()
    actions: List[SuggestedAction] = []
    if intent_rules.is_bookings_query(q) and role is Role.CUSTOMER:
        actions.append(BOOKING_HISTORY_ACTION)
    if intent_rules.is_rewards_query(q) and role is Role.CUSTOMER:
        actions.append(REWARDS_ACTION)
    if intent_rules.is_pending_pickups_query(q):
        if role is Role.CUSTOMER:
            actions.append(PENDING_PICKUPS_ACTION)
        elif role is Role.DRIVER:
            actions.append(DRIVER_BOOKINGS_ACTION)
        elif role.is_admin:
            actions.append(ADMIN_BOOKINGS_ACTION)
    if intent_rules.is_notifications_query(q):
        actions.append(notifications_action(role))
    if intent_rules.is_waste_topic(q):
        if role.is_admin:
            actions.append(SuggestedAction("Open Waste Management", "/admin/waste"))
        else:
            actions.append(SuggestedAction("Book a pickup", "/users/bookings/new"))
    return actions


def _is_internal_href(href: str) -> bool:
    return href.startswith("/") and not href.startswith("//")


def finalize_actions(actions: Sequence[SuggestedAction], current_route: str) -> List[SuggestedAction]:
    route = (current_route or "").strip()
    unique: Dict[str, SuggestedAction] = {}
    for action in actions:
        if not _is_internal_href(action.href):
            continue
        if route and action.href == route:
            continue
        unique.setdefault(f"{action.label}|{action.href}", action)
    return list(unique.values())[:MAX_SUGGESTED_ACTIONS]


def build_suggested_actions(
    question: str,
    role: Role,
    current_route: str,
    catalog_context: ToolContext,
    data_context: ToolContext,
) -> List[SuggestedAction]:
    actions = [action for action in data_context.suggested_actions if _is_internal_href(action.href)]
    actions.extend(action for action in catalog_context.suggested_actions if _is_internal_href(action.href))
    actions.extend(_intent_actions(question, role))
    if not actions:
        actions.extend(list_actions_for_role(role, DEFAULT_ROLE_ACTIONS))
    return finalize_actions(actions, current_route)
