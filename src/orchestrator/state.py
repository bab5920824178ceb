from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from src.orchestrator.intents import ChatMode, Language, Role


@dataclass(frozen=True)
class AuthContext:
    is_authenticated: bool = False
    user_id: Optional[str] = None
    role: Role = Role.GUEST

    @classmethod
    def guest(cls) -> "AuthContext":
        return cls()


@dataclass(frozen=True)
class SuggestedAction:
    label: str
    href: str

    def to_dict(self) -> Dict[str, str]:
        return {"label": self.label, "href": self.href}


@dataclass
class ToolContext:
    """Per-turn accumulator of tool output blocks and their provenance."""

    blocks: List[str] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)
    called_tools: List[str] = field(default_factory=list)
    suggested_actions: List[SuggestedAction] = field(default_factory=list)


@dataclass
class BookingDraft:
    waste_category_id: Optional[str] = None
    waste_category_name: Optional[str] = None
    quantity_kg: Optional[float] = None
    weight_range_label: Optional[str] = None
    address_line1: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    phone: Optional[str] = None
    scheduled_date: Optional[str] = None
    scheduled_time_slot: Optional[str] = None
    special_instructions: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None

    def copy(self) -> "BookingDraft":
        return replace(self)

    def to_prefill(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "wasteCategoryId": self.waste_category_id,
            "wasteCategoryName": self.waste_category_name,
            "quantityKg": self.quantity_kg,
            "weightRangeLabel": self.weight_range_label,
            "addressLine1": self.address_line1,
            "city": self.city,
            "postalCode": self.postal_code,
            "phone": self.phone,
            "specialInstructions": self.special_instructions,
            "scheduledDate": self.scheduled_date,
            "scheduledTimeSlot": self.scheduled_time_slot,
            "lat": self.lat,
            "lng": self.lng,
        }
        prefill = {key: value for key, value in payload.items() if value is not None}
        prefill["locationPicked"] = False
        return prefill


@dataclass
class BookingAssistantState:
    active: bool = False
    draft: BookingDraft = field(default_factory=BookingDraft)
    awaiting_field: Optional[str] = None
    asked_optional_notes: bool = False
    ready_to_prefill: bool = False

    def copy(self) -> "BookingAssistantState":
        return BookingAssistantState(
            active=self.active,
            draft=self.draft.copy(),
            awaiting_field=self.awaiting_field,
            asked_optional_notes=self.asked_optional_notes,
            ready_to_prefill=self.ready_to_prefill,
        )


@dataclass
class ChatSession:
    history: List[Dict[str, str]] = field(default_factory=list)
    language: Language = Language.EN
    booking_assistant: Optional[BookingAssistantState] = None
    updated_at: float = 0.0

    def copy(self) -> "ChatSession":
        return ChatSession(
            history=[dict(message) for message in self.history],
            language=self.language,
            booking_assistant=self.booking_assistant.copy() if self.booking_assistant else None,
            updated_at=self.updated_at,
        )


@dataclass
class ConversationState:
    """State carried through the chat graph for a single turn."""

    question: str = ""
    auth: AuthContext = field(default_factory=AuthContext)
    mode: ChatMode = ChatMode.KNOWLEDGE
    language: Language = Language.EN
    history: List[Dict[str, str]] = field(default_factory=list)
    current_route: str = ""
    page_context: Dict[str, str] = field(default_factory=dict)
    booking_state: Optional[BookingAssistantState] = None
    booking_handled: bool = False
    booking_draft: Optional[Dict[str, Any]] = None
    booking_actions: List[SuggestedAction] = field(default_factory=list)
    knowledge_chunks: List[Any] = field(default_factory=list)
    catalog_context: ToolContext = field(default_factory=ToolContext)
    data_context: ToolContext = field(default_factory=ToolContext)
    reply: str = ""

    def as_payload(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}


@dataclass
class ChatTurnRequest:
    """Transport-neutral input for one assistant turn."""

    messages: List[Dict[str, str]]
    client_id: str = "unknown"
    authorization: Optional[str] = None
    session_id: Optional[str] = None
    current_route: str = ""
    preferred_language: Optional[str] = None
    page_context: Optional[Dict[str, Optional[str]]] = None


@dataclass
class ChatTurnResult:
    reply: str
    mode: ChatMode
    response_language: Language
    sources: List[str] = field(default_factory=list)
    suggested_actions: List[SuggestedAction] = field(default_factory=list)
    tool_calls: List[str] = field(default_factory=list)
    booking_draft: Optional[Dict[str, Any]] = None
