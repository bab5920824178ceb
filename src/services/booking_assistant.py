from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from src.orchestrator.intents import Language, Role
from src.orchestrator.state import AuthContext, BookingAssistantState, BookingDraft, SuggestedAction
from src.services.booking_extractors import (
    DEFAULT_MATCHERS,
    TIME_SLOTS,
    WEIGHT_RANGES,
    Matcher,
    capture_notes,
    extract_fields,
    is_paper_category,
    parse_date_text,
    weight_range_by_label,
)
from src.services.locales import Translator

logger = logging.getLogger(__name__)

BOOKING_FORM_ROUTE = "/users/bookings/new"
NOTES_FIELD = "special_instructions"

_CREATION_VERB = re.compile(r"\b(book|schedule|arrange|request|create|make|place|set up|organi[sz]e)\b")
_PICKUP_NOUN = re.compile(r"\b(pickups?|pick-ups?|pick ups?|collections?|booking)\b")
_DIRECT_BOOKING = re.compile(
    r"\b(book a pickup|book pickup|book a collection|new booking|new pickup)\b"
    r"|පිකප් එකක්|එකතු කිරීමක් වෙන්|වෙන්කරවා ගන්න"
    r"|பிக்கப் முன்பதிவு|முன்பதிவு செய்ய"
)
_HOW_TO = re.compile(r"\bhow (do|can|does|to|would|should)\b|\bwhat (is|are) the (steps|process)\b|\bsteps to\b")
_LOOKUP = re.compile(
    r"\b(my|show|list|view|check|see|track)\b.*\b(bookings|pickups)\b"
    r"|\bbooking (status|history)\b|\bpending pickups?\b|\bassigned bookings?\b|\bstatus of\b"
)
_COMMAND_TAIL = (
    r"(?:\s+(?:it|this|that|the|my|booking|pickup|draft|request|form|everything|now|please))*"
    r"(?:\s*[,;.]?\s*i(?:'ve| have)?\s+changed\s+my\s+mind)?\s*[.!]*$"
)
_CANCEL = re.compile(
    r"^(?:please\s+)?(?:cancel|stop|exit|quit|abort|never\s?mind|forget it)" + _COMMAND_TAIL
    + r"|^(?:අවලංගු|නවත්වන්න|ரத்து|நிறுத்து)\S*(?:\s+\S+)?\s*[.!]*$"
)
_RESET = re.compile(
    r"^(?:please\s+)?(?:let.?s\s+)?(?:start over|start again|restart|reset|clear)" + _COMMAND_TAIL
    + r"|^(?:නැවත ආරම්භ|மீண்டும் தொடங்கு)\S*(?:\s+\S+)?\s*[.!]*$"
)


class BookingStage(str, Enum):
    INACTIVE = "INACTIVE"
    COLLECTING = "COLLECTING"
    OPTIONAL_NOTES = "OPTIONAL_NOTES"
    READY = "READY"


@dataclass
class BookingTurnResult:
    reply: str
    state: BookingAssistantState
    stage: BookingStage
    draft: Optional[Dict[str, Any]] = None
    suggested_actions: List[SuggestedAction] = field(default_factory=list)


def is_booking_intent(message: str) -> bool:
    q = message.lower()
    wants_booking = bool(_DIRECT_BOOKING.search(q)) or bool(_CREATION_VERB.search(q) and _PICKUP_NOUN.search(q))
    if not wants_booking:
        return False
    return not _HOW_TO.search(q) and not _LOOKUP.search(q)


def is_cancel_intent(message: str) -> bool:
    return bool(_CANCEL.search(message.strip().lower()))


def is_reset_intent(message: str) -> bool:
    return bool(_RESET.search(message.strip().lower()))


def missing_fields(draft: BookingDraft) -> List[str]:
    missing: List[str] = []
    if not draft.waste_category_id:
        missing.append("waste_category")
    elif is_paper_category(draft.waste_category_name) and not draft.weight_range_label:
        missing.append("weight_range")
    for name in ("address_line1", "city", "postal_code", "phone", "scheduled_date", "scheduled_time_slot"):
        if not getattr(draft, name):
            missing.append(name)
    return missing


def normalize_draft(draft: BookingDraft, today: date) -> BookingDraft:
    normalized = draft.copy()
    if normalized.scheduled_date:
        parsed = parse_date_text(normalized.scheduled_date, today)
        if parsed is not None:
            normalized.scheduled_date = parsed.isoformat()
    if is_paper_category(normalized.waste_category_name):
        option = weight_range_by_label(normalized.weight_range_label) or WEIGHT_RANGES[0]
        normalized.weight_range_label = option.label
        normalized.quantity_kg = float(option.min_kg)
    else:
        normalized.weight_range_label = None
        if not normalized.quantity_kg or normalized.quantity_kg <= 0:
            normalized.quantity_kg = 1.0
    return normalized


def _numbered(options: Sequence[str]) -> str:
    return ", ".join(f"{index}. {option}" for index, option in enumerate(options, start=1))


def _format_quantity(value: float) -> str:
    return f"{int(value)} kg" if float(value).is_integer() else f"{value} kg"


class BookingAssistant:
    """Deterministic slot-filling dialogue that drafts a pickup booking."""

    def __init__(
        self,
        category_source: Callable[[], List[Dict[str, Any]]],
        translator: Translator,
        today: Callable[[], date] = date.today,
        matchers: Sequence[Matcher] = DEFAULT_MATCHERS,
    ) -> None:
        self._category_source = category_source
        self._translator = translator
        self._today = today
        self._matchers = matchers

    def handle_turn(
        self,
        message: str,
        state: Optional[BookingAssistantState],
        auth: AuthContext,
        language: Language,
    ) -> Optional[BookingTurnResult]:
        text = message.strip()
        current = state.copy() if state else BookingAssistantState()

        if current.active:
            if is_cancel_intent(text):
                return BookingTurnResult(
                    reply=self._t(language, "booking.cancelled"),
                    state=BookingAssistantState(),
                    stage=BookingStage.INACTIVE,
                )
            if is_reset_intent(text):
                fresh = BookingAssistantState(active=True)
                return self._prompt(fresh, language, self._load_categories(), self._t(language, "booking.restarted"))
            return self._continue(text, current, language)

        restarting = current.ready_to_prefill and is_reset_intent(text)
        if not restarting and not is_booking_intent(text):
            return None
        if not auth.is_authenticated:
            return BookingTurnResult(
                reply=self._t(language, "booking.login_required"),
                state=current,
                stage=BookingStage.INACTIVE,
                suggested_actions=[SuggestedAction(self._t(language, "booking.action.sign_in"), "/login")],
            )
        if auth.role is not Role.CUSTOMER:
            return BookingTurnResult(
                reply=self._t(language, "booking.customer_only"),
                state=current,
                stage=BookingStage.INACTIVE,
            )

        fresh = BookingAssistantState(active=True)
        categories = self._load_categories()
        if restarting:
            return self._prompt(fresh, language, categories, self._t(language, "booking.restarted"))
        extract_fields(text, fresh.draft, None, categories, self._today(), self._matchers)
        return self._prompt(fresh, language, categories, self._t(language, "booking.started"))

    def _continue(self, text: str, state: BookingAssistantState, language: Language) -> BookingTurnResult:
        if state.asked_optional_notes and state.awaiting_field == NOTES_FIELD:
            state.draft.special_instructions = capture_notes(text)
            return self._finish(state, language)

        categories = self._load_categories()
        extract_fields(text, state.draft, state.awaiting_field, categories, self._today(), self._matchers)
        return self._prompt(state, language, categories)

    def _prompt(
        self,
        state: BookingAssistantState,
        language: Language,
        categories: Sequence[Dict[str, Any]],
        intro: Optional[str] = None,
    ) -> BookingTurnResult:
        missing = missing_fields(state.draft)
        if missing:
            state.awaiting_field = missing[0]
            question = self._question_for(missing[0], language, categories)
            stage = BookingStage.COLLECTING
        elif not state.asked_optional_notes:
            state.asked_optional_notes = True
            state.awaiting_field = NOTES_FIELD
            question = self._t(language, "booking.ask.special_instructions")
            stage = BookingStage.OPTIONAL_NOTES
        else:
            return self._finish(state, language)

        parts = [intro] if intro else []
        preview = self._preview(state.draft, language)
        if preview:
            parts.append(preview)
        parts.append(question)
        return BookingTurnResult(reply="\n\n".join(parts), state=state, stage=stage)

    def _finish(self, state: BookingAssistantState, language: Language) -> BookingTurnResult:
        draft = normalize_draft(state.draft, self._today())
        summary = self._preview(draft, language, heading_key="booking.ready_heading", include_notes=True)
        reply = "\n\n".join([summary, self._t(language, "booking.ready_reminder")])
        return BookingTurnResult(
            reply=reply,
            state=BookingAssistantState(draft=draft, ready_to_prefill=True),
            stage=BookingStage.READY,
            draft=draft.to_prefill(),
            suggested_actions=[SuggestedAction(self._t(language, "booking.action.open_form"), BOOKING_FORM_ROUTE)],
        )

    def _question_for(self, missing: str, language: Language, categories: Sequence[Dict[str, Any]]) -> str:
        if missing == "waste_category":
            if not categories:
                return self._t(language, "booking.ask.waste_category_unavailable")
            names = [category.get("name", "") for category in categories]
            return self._t(language, "booking.ask.waste_category", options=_numbered(names))
        if missing == "weight_range":
            return self._t(language, "booking.ask.weight_range", options=_numbered([o.label for o in WEIGHT_RANGES]))
        if missing == "scheduled_time_slot":
            return self._t(language, "booking.ask.scheduled_time_slot", options=_numbered(TIME_SLOTS))
        return self._t(language, f"booking.ask.{missing}")

    def _preview(
        self,
        draft: BookingDraft,
        language: Language,
        heading_key: str = "booking.progress_heading",
        include_notes: bool = False,
    ) -> str:
        rows = []
        if draft.waste_category_name:
            rows.append(("field.waste_category", draft.waste_category_name))
        if is_paper_category(draft.waste_category_name) and draft.weight_range_label:
            rows.append(("field.weight_range", draft.weight_range_label))
        elif draft.quantity_kg:
            rows.append(("field.quantity", _format_quantity(draft.quantity_kg)))
        for name in ("address_line1", "city", "postal_code", "phone", "scheduled_date", "scheduled_time_slot"):
            value = getattr(draft, name)
            if value:
                rows.append((f"field.{name}", value))
        if include_notes:
            rows.append(("field.special_instructions", draft.special_instructions or self._t(language, "booking.none")))
        if not rows:
            return ""
        lines = [self._t(language, heading_key)]
        lines.extend(f"- {self._t(language, key)}: {value}" for key, value in rows)
        return "\n".join(lines)

    def _load_categories(self) -> List[Dict[str, Any]]:
        try:
            return list(self._category_source())
        except Exception:
            logger.warning("Could not load waste categories for booking assistant", exc_info=True)
            return []

    def _t(self, language: Language, key: str, **params: object) -> str:
        return self._translator.translate(language, key, **params)
