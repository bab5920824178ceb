from __future__ import annotations

from enum import Enum


class ChatMode(str, Enum):
    KNOWLEDGE = "knowledge"
    DATA = "data"
    MIXED = "mixed"


class Role(str, Enum):
    CUSTOMER = "CUSTOMER"
    DRIVER = "DRIVER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"
    GUEST = "GUEST"

    @classmethod
    def from_label(cls, label: str | None) -> "Role | None":
        if not label:
            return None
        try:
            role = cls(label.strip().upper())
        except ValueError:
            return None
        return None if role is cls.GUEST else role

    @property
    def is_admin(self) -> bool:
        return self in (Role.ADMIN, Role.SUPER_ADMIN)


class Language(str, Enum):
    EN = "EN"
    SI = "SI"
    TA = "TA"

    @property
    def display_name(self) -> str:
        return {"EN": "English", "SI": "Sinhala", "TA": "Tamil"}[self.value]


class LanguagePreference(str, Enum):
    AUTO = "AUTO"
    EN = "EN"
    SI = "SI"
    TA = "TA"

    @classmethod
    def from_label(cls, label: str | None) -> "LanguagePreference":
        normalized = (label or "AUTO").strip().upper()
        try:
            return cls(normalized)
        except ValueError:
            return cls.AUTO

    def as_language(self) -> Language | None:
        if self is LanguagePreference.AUTO:
            return None
        return Language(self.value)
