from __future__ import annotations

import re
from typing import Dict, Iterable, Optional

from src.orchestrator.intents import Language, LanguagePreference

_SINHALA_CHAR = re.compile(r"[\u0d80-\u0dff]")
_TAMIL_CHAR = re.compile(r"[\u0b80-\u0bff]")
_LATIN_WORD = re.compile(r"\b[A-Za-z][A-Za-z'-]*\b")

MIN_SCRIPT_CHARS = 2
MIN_LATIN_WORDS = 3


def detect_language(text: str) -> Optional[Language]:
    """Classify a single message by script, or return None when unsure.

    Short Latin acknowledgements such as "ok thanks" are deliberately left
    unclassified so they do not flip an ongoing Sinhala or Tamil conversation.
    """
    trimmed = (text or "").strip()
    if not trimmed:
        return None

    sinhala = len(_SINHALA_CHAR.findall(trimmed))
    tamil = len(_TAMIL_CHAR.findall(trimmed))
    if sinhala >= MIN_SCRIPT_CHARS or tamil >= MIN_SCRIPT_CHARS:
        return Language.SI if sinhala >= tamil else Language.TA

    latin_words = len(_LATIN_WORD.findall(trimmed))
    if latin_words >= MIN_LATIN_WORDS and sinhala == 0 and tamil == 0:
        return Language.EN
    return None


def detect_from_history(messages: Iterable[Dict[str, str]]) -> Optional[Language]:
    for message in reversed(list(messages)):
        if message.get("role") != "user":
            continue
        detected = detect_language(message.get("content", ""))
        if detected:
            return detected
    return None


def resolve_language(
    preference: str | LanguagePreference | None,
    latest_message: str,
    history: Iterable[Dict[str, str]] = (),
    session_language: Optional[Language] = None,
) -> Language:
    if not isinstance(preference, LanguagePreference):
        preference = LanguagePreference.from_label(preference)
    explicit = preference.as_language()
    if explicit:
        return explicit

    detected = detect_language(latest_message)
    if detected:
        return detected

    if session_language is not None:
        return session_language

    return detect_from_history(history) or Language.EN
