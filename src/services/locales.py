from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Mapping, Optional

from src.orchestrator.intents import Language

logger = logging.getLogger(__name__)

LOCALES_DIR = Path(__file__).resolve().parents[1] / "locales"


class Translator:
    """Looks up user-facing strings by (language, message key)."""

    def __init__(self, packs: Mapping[Language, Mapping[str, str]]) -> None:
        self._packs: Dict[Language, Dict[str, str]] = {language: dict(pack) for language, pack in packs.items()}

    def translate(self, language: Language, key: str, **params: object) -> str:
        template = self._packs.get(language, {}).get(key)
        if template is None:
            template = self._packs.get(Language.EN, {}).get(key, key)
        return template.format(**params) if params else template

    def has(self, language: Language, key: str) -> bool:
        return key in self._packs.get(language, {})


def load_translator(directory: Optional[Path] = None) -> Translator:
    base = directory or LOCALES_DIR
    packs: Dict[Language, Dict[str, str]] = {}
    for language in Language:
        path = base / f"{language.value.lower()}.json"
        if not path.exists():
            logger.warning("Locale pack %s is missing", path)
            continue
        packs[language] = json.loads(path.read_text(encoding="utf-8"))
    return Translator(packs)
