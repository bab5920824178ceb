from __future__ import annotations

import re

from src.orchestrator.intents import ChatMode

_KNOWLEDGE_SIGNAL = re.compile(
    r"\b(how|where|what|explain|policy|rule|workflow|lifecycle|pricing|waste types?|roles?|statuses?)\b"
)
_PERSONAL_SIGNAL = re.compile(r"\b(my|me|mine|assigned to me)\b")
_DATA_ENTITY_SIGNAL = re.compile(
    r"\b(bookings?|points?|rewards?|notifications?|profile|pending pickups?|summary|counts?|assigned)\b"
)
_ADMIN_SCOPE_SIGNAL = re.compile(r"\b(all bookings|system summary|dashboard summary|total bookings|unassigned)\b")
_DIRECT_DATA_SIGNAL = re.compile(r"\bmy bookings\b|\bmy points\b|\bpending pickups\b|\bassigned bookings\b")

_PRIVATE_DATA = re.compile(
    r"\b(my|me|mine|assigned to me|my account|my profile)\b"
    r"|\b(pending pickups?|assigned bookings?|my bookings|my points|my notifications)\b"
)
_ADMIN_SUMMARY = re.compile(
    r"\b(admin booking summary|dashboard summary|all bookings|system summary|total bookings|unassigned"
    r"|pending pickups across system)\b"
)
_UNASSIGNED = re.compile(r"\bunassigned\b|\bnot assigned\b")
_PROFILE = re.compile(r"\b(my profile|my account|who am i|current user)\b")
_BOOKINGS = re.compile(r"\b(bookings?|booking status|booking history)\b")
_PENDING_PICKUPS = re.compile(r"\bpending pickups?\b")
_ASSIGNED_BOOKINGS = re.compile(r"\bassigned bookings?\b|\bbookings assigned\b")
_REWARDS = re.compile(r"\b(my points|points balance|rewards?|how (?:do )?rewards? work)\b")
_NOTIFICATIONS = re.compile(r"\bnotifications?\b")
_WASTE_PRICING = re.compile(r"\b(waste types?|pricing|price|rates?)\b")
_REWARD_RULES = re.compile(r"\b(reward rules?|how (?:do )?rewards? work|points rules?|e-waste bonus|multiplier)\b")
_WASTE_TOPIC = re.compile(r"\b(waste|pricing|rate|category)\b")


def determine_mode(question: str) -> ChatMode:
    q = question.lower()
    has_knowledge = bool(_KNOWLEDGE_SIGNAL.search(q))
    has_data = bool(
        (_PERSONAL_SIGNAL.search(q) and _DATA_ENTITY_SIGNAL.search(q))
        or _ADMIN_SCOPE_SIGNAL.search(q)
        or _DIRECT_DATA_SIGNAL.search(q)
    )
    if has_data and has_knowledge:
        return ChatMode.MIXED
    if has_data:
        return ChatMode.DATA
    return ChatMode.KNOWLEDGE


def asks_private_data(q: str) -> bool:
    return bool(_PRIVATE_DATA.search(q))


def asks_admin_summary(q: str) -> bool:
    return bool(_ADMIN_SUMMARY.search(q))


def asks_unassigned(q: str) -> bool:
    return bool(_UNASSIGNED.search(q))


def is_profile_query(q: str) -> bool:
    return bool(_PROFILE.search(q))


def is_bookings_query(q: str) -> bool:
    return bool(_BOOKINGS.search(q))


def is_pending_pickups_query(q: str) -> bool:
    return bool(_PENDING_PICKUPS.search(q))


def is_assigned_bookings_query(q: str) -> bool:
    return bool(_ASSIGNED_BOOKINGS.search(q))


def is_rewards_query(q: str) -> bool:
    return bool(_REWARDS.search(q))


def is_notifications_query(q: str) -> bool:
    return bool(_NOTIFICATIONS.search(q))


def is_waste_pricing_query(q: str) -> bool:
    return bool(_WASTE_PRICING.search(q))


def is_reward_rules_query(q: str) -> bool:
    return bool(_REWARD_RULES.search(q))


def is_waste_topic(q: str) -> bool:
    return bool(_WASTE_TOPIC.search(q))
