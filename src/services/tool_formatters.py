from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List

from src.services.chat_tools import ADMIN_PENDING_STATUSES
from src.services.errors import PermissionDenied


def _short_id(value: Any) -> str:
    return str(value)[:8]


def _day(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()[:10]
    if value is None:
        return "N/A"
    return str(value)[:10]


def _or_na(value: Any) -> Any:
    return "N/A" if value is None else value


def format_tool_failure(tool_name: str, error: Exception) -> str:
    if isinstance(error, PermissionDenied):
        if error.rule == "authentication":
            return f"Tool {tool_name}: unavailable because the user is not authenticated."
        return f"Tool {tool_name}: blocked by {error.rule} rule ({error})."
    return f"Tool {tool_name}: unavailable ({error})."


def format_catalog_failure(tool_name: str, error: Exception) -> str:
    return f"Tool note ({tool_name}): data unavailable right now ({error})."


def format_profile(profile: Dict[str, Any]) -> str:
    approved = profile.get("approved")
    return "\n".join(
        [
            "Tool output: current user profile",
            f"- Role: {profile.get('role')}",
            f"- Name: {profile.get('full_name') or 'Unknown'}",
            f"- Email: {profile.get('email')}",
            f"- Phone: {profile.get('phone') or 'Not set'}",
            f"- Total points (profile): {_or_na(profile.get('total_points'))}",
            f"- Approved: {'N/A' if approved is None else ('yes' if approved else 'no')}",
        ]
    )


def format_user_bookings(data: Dict[str, Any], pending_only: bool) -> str:
    rows = data.get("items", [])[:8]
    lines = [
        "Tool output: pending user pickups" if pending_only else "Tool output: user bookings",
        f"- Total returned: {len(rows)}",
        f"- Pending pickups (all): {data.get('pending_count', 0)}",
    ]
    if not rows:
        lines.append("- No bookings found for this scope.")
        return "\n".join(lines)

    lines.append("- Recent items:")
    for item in rows:
        lines.append(
            f"  - #{_short_id(item['id'])} | {item['status']} | {_day(item.get('scheduled_date'))} "
            f"{item.get('scheduled_time_slot') or ''} | {item.get('waste_category')}".rstrip()
        )
    return "\n".join(lines)


def format_user_rewards(data: Dict[str, Any]) -> str:
    lines = [
        "Tool output: user rewards",
        f"- Total points: {data.get('total_points', 0)}",
        f"- Points this month: {data.get('month_points', 0)}",
        f"- Month range: {data.get('year_month') or 'N/A'}",
    ]
    recent = data.get("recent_transactions", [])[:5]
    if recent:
        lines.append("- Recent reward transactions:")
        for row in recent:
            lines.append(
                f"  - Booking #{_short_id(row.get('booking_id'))} | +{row.get('points_awarded', 0)} pts | "
                f"{_day(row.get('awarded_at'))}"
            )
    return "\n".join(lines)


def format_notifications(data: Dict[str, Any]) -> str:
    items = data.get("items", [])[:8]
    lines = [
        "Tool output: notifications",
        f"- Unread count: {data.get('unread_count', 0)}",
        f"- Recent items: {len(items)}",
    ]
    for item in items:
        state = "read" if item.get("is_read") else "unread"
        lines.append(f"  - [{item.get('level', 'INFO')}] {item.get('title', '')} ({state})")
    return "\n".join(lines)


def format_driver_bookings(data: Dict[str, Any], pending_only: bool) -> str:
    items: List[Dict[str, Any]] = data.get("items", [])
    if pending_only:
        items = [item for item in items if item["status"] in ADMIN_PENDING_STATUSES]
    top = items[:10]
    lines = [
        "Tool output: driver pending assigned bookings" if pending_only else "Tool output: driver assigned bookings",
        f"- Total assigned: {data.get('total', 0)}",
        f"- Active count: {data.get('active_count', 0)}",
        f"- Returned rows: {len(top)}",
    ]
    for item in top:
        lines.append(f"  - #{_short_id(item['id'])} | {item['status']} | {item.get('city')} | {item.get('waste_category')}")
    return "\n".join(lines)


def format_admin_summary(data: Dict[str, Any]) -> str:
    lines = [
        "Tool output: admin booking summary (counts only)",
        f"- Total bookings: {data.get('total_bookings', 0)}",
        f"- Pending pickups: {data.get('pending_pickups', 0)}",
        f"- Unassigned bookings: {data.get('unassigned_bookings', 0)}",
    ]
    counts = data.get("counts_by_status") or {}
    if counts:
        lines.append("- Counts by status:")
        for status in sorted(counts):
            lines.append(f"  - {status}: {counts[status]}")
    return "\n".join(lines)


def format_waste_types(waste_types: List[Dict[str, Any]]) -> str:
    lines = [
        "Tool output: waste types and rates from database",
        f"- Active categories: {len(waste_types)}",
        "- Sample rates (LKR/kg):",
    ]
    for item in waste_types[:12]:
        lines.append(
            f"  - {item['name']} ({item['slug']}): min={_or_na(item.get('min_price_lkr_per_kg'))}, "
            f"max={_or_na(item.get('max_price_lkr_per_kg'))}, midpoint={_or_na(item.get('rate_per_kg'))}"
        )
    return "\n".join(lines)


def format_reward_rules(rules: Dict[str, Any]) -> str:
    base = rules.get("base_rates", {})
    multipliers = rules.get("multipliers", {})
    return "\n".join(
        [
            "Tool output: reward rules configuration",
            f"- Plastic rate: {_or_na(base.get('plastic'))} pts/kg",
            f"- Metal rate: {_or_na(base.get('metal'))} pts/kg",
            f"- E-waste bonus: +{_or_na(rules.get('e_waste_bonus'))} points",
            f"- Weekly multiplier: {_or_na(multipliers.get('weekly'))}x",
            f"- First booking multiplier: {_or_na(multipliers.get('first_booking'))}x",
            f"- Standard multiplier: {_or_na(multipliers.get('standard'))}x",
            f"- Multiplier policy: {_or_na(rules.get('multiplier_policy'))}",
            f"- Award condition: {_or_na(rules.get('award_condition'))}",
            f"- Formula: {_or_na(rules.get('formula'))}",
        ]
    )
