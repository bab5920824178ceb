from __future__ import annotations

from datetime import date

import pytest

from fakes import default_categories

from src.orchestrator.state import BookingDraft
from src.services.booking_extractors import (
    TIME_SLOTS,
    capture_notes,
    extract_fields,
    normalize_phone,
    parse_date_text,
    slot_for_hour,
    weight_range_for,
)

TODAY = date(2026, 10, 18)


def _extract(message: str, awaiting=None, draft=None):
    draft = draft or BookingDraft()
    captured = extract_fields(message, draft, awaiting, default_categories(), TODAY)
    return draft, captured


def test_category_matched_by_name_inside_sentence():
    draft, captured = _extract("I want to book a plastic pickup")

    assert captured == {"waste_category"}
    assert draft.waste_category_id == "cat-plastic"
    assert draft.waste_category_name == "Plastic (PET)"


def test_category_matched_by_alias_and_plural():
    draft, _ = _extract("some old newspapers")
    assert draft.waste_category_id == "cat-paper"

    draft, _ = _extract("broken electronics")
    assert draft.waste_category_id == "cat-ewaste"


def test_category_option_number_only_when_awaiting_category():
    draft, _ = _extract("3", awaiting="waste_category")
    assert draft.waste_category_id == "cat-metal"

    draft, _ = _extract("3", awaiting="phone")
    assert draft.waste_category_id is None


def test_category_not_read_from_address_answer():
    draft, captured = _extract("7 Metal Lane", awaiting="address_line1")

    assert draft.waste_category_id is None
    assert draft.address_line1 == "7 Metal Lane"
    assert "waste_category" not in captured


def test_weight_with_unit_sets_quantity_and_range():
    draft, _ = _extract("about 12 kg of paper")

    assert draft.quantity_kg == 12
    assert draft.weight_range_label == "10-20 kg"
    assert draft.waste_category_id == "cat-paper"


def test_weight_in_grams_is_converted():
    draft, _ = _extract("500 g of plastic")

    assert draft.quantity_kg == pytest.approx(0.5)
    assert draft.weight_range_label == "1-5 kg"


def test_weight_range_label_and_option_number():
    draft, _ = _extract("20 to 50 kg")
    assert draft.weight_range_label == "20-50 kg"

    draft, _ = _extract("50+", awaiting="weight_range")
    assert draft.weight_range_label == "50+ kg"

    draft, _ = _extract("2", awaiting="weight_range")
    assert draft.weight_range_label == "5-10 kg"
    assert draft.quantity_kg == 5


def test_bare_range_without_unit_is_ignored_when_not_awaiting_weight():
    draft, _ = _extract("1-5")

    assert draft.weight_range_label is None


def test_relative_and_numeric_dates():
    assert _extract("tomorrow please")[0].scheduled_date == "2026-10-19"
    assert _extract("day after tomorrow")[0].scheduled_date == "2026-10-20"
    assert _extract("2026-11-02")[0].scheduled_date == "2026-11-02"
    assert _extract("on 25/10")[0].scheduled_date == "2026-10-25"
    assert _extract("හෙට")[0].scheduled_date == "2026-10-19"
    assert _extract("நாளை")[0].scheduled_date == "2026-10-19"


def test_past_dates_are_not_captured():
    draft, captured = _extract("2026-10-01", awaiting="scheduled_date")

    assert draft.scheduled_date is None
    assert "scheduled_date" not in captured


def test_day_month_already_passed_rolls_to_next_year():
    assert parse_date_text("5/1", TODAY) == date(2027, 1, 5)
    assert parse_date_text("31/2", TODAY) is None


def test_date_message_does_not_fill_time_slot():
    draft, captured = _extract("tomorrow 2pm", awaiting="scheduled_date")

    assert draft.scheduled_date == "2026-10-19"
    assert draft.scheduled_time_slot is None
    assert captured == {"scheduled_date"}


def test_time_slot_from_clock_time_when_awaited():
    draft, _ = _extract("2pm", awaiting="scheduled_time_slot")

    assert draft.scheduled_time_slot == "1:00 PM - 3:00 PM"


@pytest.mark.parametrize(
    "message, expected",
    [
        ("9:30 am", TIME_SLOTS[0]),
        ("16:00", TIME_SLOTS[3]),
        ("5", TIME_SLOTS[4]),
        ("late afternoon", TIME_SLOTS[3]),
        ("afternoon works", TIME_SLOTS[2]),
        ("morning", TIME_SLOTS[0]),
        ("10:00 AM - 12:00 PM", TIME_SLOTS[1]),
    ],
)
def test_time_slot_variants(message, expected):
    assert _extract(message, awaiting="scheduled_time_slot")[0].scheduled_time_slot == expected


def test_time_outside_service_hours_is_not_mapped():
    assert slot_for_hour(21) is None
    assert slot_for_hour(0) is None
    assert slot_for_hour(5) is None
    assert slot_for_hour(6) == "8:00 AM - 10:00 AM"
    assert _extract("9pm", awaiting="scheduled_time_slot")[0].scheduled_time_slot is None
    assert _extract("12 am", awaiting="scheduled_time_slot")[0].scheduled_time_slot is None
    assert _extract("3am", awaiting="scheduled_time_slot")[0].scheduled_time_slot is None


def test_phone_numbers_are_normalized():
    assert _extract("call me on 077 123 4567")[0].phone == "+94771234567"
    assert normalize_phone("+94 77 123 4567") == "+94771234567"
    assert normalize_phone("94771234567") == "+94771234567"


def test_postal_code_with_keyword_or_when_awaited():
    assert _extract("postal code is 10250")[0].postal_code == "10250"
    assert _extract("10250", awaiting="postal_code")[0].postal_code == "10250"
    assert _extract("10250", awaiting="city")[0].postal_code == "10250"
    assert _extract("10250")[0].postal_code is None


def test_address_with_city_and_postal_suffix():
    draft, captured = _extract("My address is 42 Galle Road, Colombo 00300", awaiting="address_line1")

    assert draft.address_line1 == "42 Galle Road"
    assert draft.city == "Colombo"
    assert draft.postal_code == "00300"
    assert captured == {"address_line1", "city", "postal_code"}


def test_address_with_slash_number_is_not_a_date():
    draft, _ = _extract("12/4 Temple Road", awaiting="address_line1")

    assert draft.address_line1 == "12/4 Temple Road"
    assert draft.scheduled_date is None


def test_city_answer_strips_filler():
    assert _extract("it's in Kandy", awaiting="city")[0].city == "Kandy"


def test_first_capture_wins_within_a_turn():
    draft, _ = _extract("plastic on 2026-11-02 or maybe 2026-11-05")

    assert draft.scheduled_date == "2026-11-02"


def test_several_fields_from_one_message():
    draft, captured = _extract("Book a metal pickup tomorrow, phone 0712345678, postal code 80000")

    assert captured == {"waste_category", "scheduled_date", "phone", "postal_code"}
    assert draft.phone == "+94712345678"
    assert draft.postal_code == "80000"


def test_weight_range_for_boundaries():
    assert weight_range_for(5).label == "1-5 kg"
    assert weight_range_for(5.5).label == "5-10 kg"
    assert weight_range_for(120).label == "50+ kg"


def test_capture_notes_skip_words():
    assert capture_notes("skip") is None
    assert capture_notes("No.") is None
    assert capture_notes("  Ring   the bell ") == "Ring the bell"
    assert len(capture_notes("x" * 900)) == 500
