from __future__ import annotations

from datetime import date

import pytest

from fakes import default_categories

from src.orchestrator.intents import Language, Role
from src.orchestrator.state import AuthContext, BookingDraft
from src.services.booking_assistant import (
    BOOKING_FORM_ROUTE,
    BookingAssistant,
    BookingStage,
    is_booking_intent,
    is_cancel_intent,
    is_reset_intent,
    missing_fields,
    normalize_draft,
)
from src.services.locales import load_translator

TODAY = date(2026, 10, 18)
CUSTOMER = AuthContext(is_authenticated=True, user_id="cust-1", role=Role.CUSTOMER)


@pytest.fixture()
def assistant() -> BookingAssistant:
    return BookingAssistant(default_categories, load_translator(), today=lambda: TODAY)


def _turns(assistant, messages, auth=CUSTOMER, language=Language.EN):
    state = None
    results = []
    for message in messages:
        result = assistant.handle_turn(message, state, auth, language)
        results.append(result)
        state = result.state if result else state
    return results


def test_booking_intent_detection():
    assert is_booking_intent("I want to book a plastic pickup")
    assert is_booking_intent("Can you schedule a collection for Friday?")
    assert is_booking_intent("new booking")
    assert not is_booking_intent("How do I book a pickup?")
    assert not is_booking_intent("show my pickups")
    assert not is_booking_intent("What is the booking status of my order")
    assert not is_booking_intent("What are your prices?")


def test_cancel_and_reset_must_be_whole_commands():
    assert is_cancel_intent("cancel")
    assert is_cancel_intent("never mind")
    assert is_cancel_intent("Cancel the booking.")
    assert is_cancel_intent("please cancel this booking draft now, I changed my mind")
    assert not is_cancel_intent("12 Bus Stop Road")
    assert not is_cancel_intent("Stop at the blue gate")
    assert not is_cancel_intent("please do not cancel if it rains, just call me first ok")
    assert is_reset_intent("start over")
    assert is_reset_intent("let's restart")
    assert is_reset_intent("start over please")
    assert not is_reset_intent("the gate is clear")


def test_opening_message_fills_category_and_asks_for_address(assistant):
    result = assistant.handle_turn("I want to book a plastic pickup", None, CUSTOMER, Language.EN)

    assert result.stage is BookingStage.COLLECTING
    assert result.state.active is True
    assert result.state.awaiting_field == "address_line1"
    assert result.state.draft.waste_category_name == "Plastic (PET)"
    assert "- Waste category: Plastic (PET)" in result.reply
    assert result.reply.endswith("What is the street address for the pickup?")


def test_full_conversation_reaches_ready_with_prefill(assistant):
    results = _turns(
        assistant,
        [
            "I want to book a plastic pickup",
            "42 Galle Road, Colombo 00300",
            "0771234567",
            "tomorrow 2pm",
            "2pm",
            "Please ring the bell",
        ],
    )

    assert [r.state.awaiting_field for r in results[:5]] == [
        "address_line1",
        "phone",
        "scheduled_date",
        "scheduled_time_slot",
        "special_instructions",
    ]
    assert results[3].state.draft.scheduled_date == "2026-10-19"
    assert results[3].state.draft.scheduled_time_slot is None
    assert results[4].stage is BookingStage.OPTIONAL_NOTES

    final = results[5]
    assert final.stage is BookingStage.READY
    assert final.state.active is False
    assert final.state.ready_to_prefill is True
    assert final.draft == {
        "wasteCategoryId": "cat-plastic",
        "wasteCategoryName": "Plastic (PET)",
        "quantityKg": 1.0,
        "addressLine1": "42 Galle Road",
        "city": "Colombo",
        "postalCode": "00300",
        "phone": "+94771234567",
        "specialInstructions": "Please ring the bell",
        "scheduledDate": "2026-10-19",
        "scheduledTimeSlot": "1:00 PM - 3:00 PM",
        "locationPicked": False,
    }
    assert [a.href for a in final.suggested_actions] == [BOOKING_FORM_ROUTE]
    assert "- Special instructions: Please ring the bell" in final.reply


def test_notes_are_asked_once_and_can_be_skipped(assistant):
    results = _turns(
        assistant,
        [
            "Book a metal pickup tomorrow, phone 0712345678, postal code 80000",
            "15 Lake Drive",
            "Kandy",
            "morning",
            "skip",
        ],
    )

    assert results[3].stage is BookingStage.OPTIONAL_NOTES
    assert results[4].stage is BookingStage.READY
    assert "specialInstructions" not in results[4].draft
    assert "- Special instructions: None" in results[4].reply


def test_paper_category_asks_for_weight_range(assistant):
    first, second = _turns(assistant, ["book a paper pickup", "2"])

    assert first.state.awaiting_field == "weight_range"
    assert "1. 1-5 kg, 2. 5-10 kg" in first.reply
    assert second.state.draft.weight_range_label == "5-10 kg"
    assert second.state.awaiting_field == "address_line1"


def test_cancel_resets_the_draft(assistant):
    started, cancelled = _turns(assistant, ["I want to book a plastic pickup", "cancel"])

    assert started.state.active is True
    assert cancelled.stage is BookingStage.INACTIVE
    assert cancelled.state.active is False
    assert cancelled.state.draft == BookingDraft()
    assert "cancelled the booking draft" in cancelled.reply


def test_reset_starts_a_fresh_draft(assistant):
    _, restarted = _turns(assistant, ["I want to book a plastic pickup", "start over"])

    assert restarted.state.active is True
    assert restarted.state.draft.waste_category_id is None
    assert restarted.state.awaiting_field == "waste_category"
    assert "1. Plastic (PET), 2. Paper & Cardboard, 3. Metal, 4. E-Waste" in restarted.reply


def test_guest_is_asked_to_sign_in(assistant):
    result = assistant.handle_turn("book a pickup", None, AuthContext.guest(), Language.EN)

    assert result.stage is BookingStage.INACTIVE
    assert result.state.active is False
    assert [(a.label, a.href) for a in result.suggested_actions] == [("Sign in", "/login")]


def test_non_customer_roles_cannot_book(assistant):
    driver = AuthContext(is_authenticated=True, user_id="drv-1", role=Role.DRIVER)

    result = assistant.handle_turn("book a pickup", None, driver, Language.EN)

    assert result.stage is BookingStage.INACTIVE
    assert "Only customer accounts" in result.reply


def test_unrelated_message_is_not_handled(assistant):
    assert assistant.handle_turn("What are the reward rules?", None, CUSTOMER, Language.EN) is None
    assert assistant.handle_turn("cancel", None, CUSTOMER, Language.EN) is None


def test_replies_follow_the_response_language(assistant):
    result = assistant.handle_turn("book a pickup", None, CUSTOMER, Language.SI)

    assert result.reply.startswith(load_translator().translate(Language.SI, "booking.started"))


def test_missing_categories_fall_back_to_examples():
    def broken_source():
        raise RuntimeError("database offline")

    assistant = BookingAssistant(broken_source, load_translator(), today=lambda: TODAY)

    result = assistant.handle_turn("book a pickup", None, CUSTOMER, Language.EN)

    assert result.state.awaiting_field == "waste_category"
    assert "for example plastic, paper, metal or e-waste" in result.reply


def test_missing_fields_order():
    draft = BookingDraft(waste_category_id="cat-paper", waste_category_name="Paper & Cardboard")

    assert missing_fields(draft)[:3] == ["weight_range", "address_line1", "city"]
    assert missing_fields(BookingDraft())[0] == "waste_category"


def test_normalize_draft_sets_quantities():
    paper = normalize_draft(BookingDraft(waste_category_name="Cardboard", scheduled_date="tomorrow"), TODAY)
    metal = normalize_draft(BookingDraft(waste_category_name="Metal", weight_range_label="1-5 kg"), TODAY)

    assert paper.weight_range_label == "1-5 kg"
    assert paper.quantity_kg == 1.0
    assert paper.scheduled_date == "2026-10-19"
    assert metal.weight_range_label is None
    assert metal.quantity_kg == 1.0


def test_plain_booking_request_asks_for_category_first(assistant):
    result = assistant.handle_turn("book a pickup", None, CUSTOMER, Language.EN)

    assert result.stage is BookingStage.COLLECTING
    assert result.state.awaiting_field == "waste_category"
    assert "Which waste category should we collect?" in result.reply


def test_booking_again_after_cancel_starts_clean(assistant):
    *_, again = _turns(
        assistant,
        ["I want to book a plastic pickup", "42 Galle Road, Colombo 00300", "cancel", "book a pickup"],
    )

    assert again.state.draft.waste_category_id is None
    assert again.state.draft.city is None
    assert again.state.awaiting_field == "waste_category"


def test_address_mentioning_stop_keeps_the_draft(assistant):
    _, second = _turns(assistant, ["I want to book a plastic pickup", "12 Bus Stop Road"])

    assert second.stage is BookingStage.COLLECTING
    assert second.state.active is True
    assert second.state.draft.waste_category_id == "cat-plastic"
    assert second.state.draft.address_line1 == "12 Bus Stop Road"
    assert second.state.awaiting_field == "city"


def test_notes_starting_with_stop_finish_the_booking(assistant):
    *_, final = _turns(
        assistant,
        [
            "I want to book a plastic pickup",
            "42 Galle Road, Colombo 00300",
            "0771234567",
            "tomorrow",
            "2pm",
            "Stop at the blue gate",
        ],
    )

    assert final.stage is BookingStage.READY
    assert final.draft["specialInstructions"] == "Stop at the blue gate"


def test_start_over_after_ready_opens_a_fresh_draft(assistant):
    *_, ready, restarted = _turns(
        assistant,
        [
            "Book a metal pickup tomorrow, phone 0712345678, postal code 80000",
            "15 Lake Drive",
            "Kandy",
            "morning",
            "skip",
            "start over",
        ],
    )

    assert ready.stage is BookingStage.READY
    assert restarted.stage is BookingStage.COLLECTING
    assert restarted.state.active is True
    assert restarted.state.draft == BookingDraft()
    assert restarted.reply.startswith("Starting over with a fresh booking draft.")


def test_start_over_without_a_booking_is_not_handled(assistant):
    assert assistant.handle_turn("start over", None, CUSTOMER, Language.EN) is None
