from __future__ import annotations

from src.orchestrator.intents import Language, LanguagePreference
from src.services.language import detect_language, resolve_language


def test_explicit_preference_wins_over_script():
    assert resolve_language("TA", "මට පිකප් එකක් ඕනේ") is Language.TA
    assert resolve_language(LanguagePreference.EN, "மின்னணு கழிவு") is Language.EN


def test_auto_detects_sinhala_and_tamil_script():
    assert resolve_language("AUTO", "මට පිකප් එකක් ඕනේ") is Language.SI
    assert resolve_language(None, "பிளாஸ்டிக் பிக்கப் வேண்டும்") is Language.TA


def test_auto_detects_english_with_enough_words():
    assert resolve_language("AUTO", "How do rewards work here?", session_language=Language.SI) is Language.EN


def test_short_latin_reply_keeps_session_language():
    assert detect_language("ok thanks") is None
    assert resolve_language("AUTO", "ok thanks", session_language=Language.TA) is Language.TA


def test_falls_back_to_history_then_english():
    history = [
        {"role": "user", "content": "ප්ලාස්ටික් මිල කීයද"},
        {"role": "assistant", "content": "Plastic is 40-60 LKR per kg."},
    ]

    assert resolve_language("AUTO", "ok", history) is Language.SI
    assert resolve_language("AUTO", "ok", []) is Language.EN


def test_unknown_preference_label_is_treated_as_auto():
    assert LanguagePreference.from_label("fr") is LanguagePreference.AUTO
    assert resolve_language("fr", "ok", [], Language.TA) is Language.TA
