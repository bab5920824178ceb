from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Sequence

from src.adapters.data_store import DataStore
from src.orchestrator.intents import Role
from src.orchestrator.state import AuthContext
from src.services.errors import PermissionDenied

CUSTOMER_PENDING_STATUSES = ("CREATED", "SCHEDULED", "ASSIGNED", "IN_PROGRESS")
DRIVER_ACTIVE_STATUSES = frozenset({"ASSIGNED", "IN_PROGRESS"})
UNASSIGNED_STATUSES = ("CREATED", "SCHEDULED")
ADMIN_PENDING_STATUSES = ("CREATED", "ASSIGNED", "IN_PROGRESS")

BASE_POINT_RATES = {"plastic": 10, "metal": 20}
E_WASTE_BONUS_POINTS = 30
MULTIPLIERS = {"weekly": 2.0, "first_booking": 1.5, "standard": 1.0}

_ADMIN_ROLES = (Role.ADMIN, Role.SUPER_ADMIN)


def normalize_waste_name(value: str | None) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (value or "").lower().strip()).strip("-")


def _status(value: Any) -> str:
    return str(value or "UNKNOWN").upper()


def _month_range(now: datetime) -> tuple[datetime, datetime, str]:
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end, start.strftime("%Y-%m")


class ChatTools:
    """Role-gated, read-only lookups used by the assistant."""

    def __init__(self, store: DataStore, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)) -> None:
        self._store = store
        self._clock = clock

    def get_current_user_profile(self, auth: AuthContext) -> Dict[str, Any]:
        user_id = self._require_auth(auth)
        user = self._store.get_user(user_id)
        if not user:
            raise LookupError("User profile not found")
        return {
            "id": user["id"],
            "role": user.get("role"),
            "email": user.get("email"),
            "full_name": user.get("full_name"),
            "phone": user.get("phone"),
            "approved": user.get("approved"),
            "total_points": user.get("total_points"),
            "created_at": user.get("created_at"),
        }

    def get_user_bookings(self, user_id: str, auth: AuthContext, pending_only: bool = False) -> Dict[str, Any]:
        auth_user_id = self._require_auth(auth)
        self._require_role(auth, (Role.CUSTOMER,), "get_user_bookings")
        self._require_owner(auth_user_id, user_id, "Users can only access their own bookings")

        statuses = CUSTOMER_PENDING_STATUSES if pending_only else None
        bookings = self._store.list_user_bookings(user_id, statuses=statuses, limit=12)
        pending_count = self._store.count_user_bookings(user_id, CUSTOMER_PENDING_STATUSES)
        return {
            "total": len(bookings),
            "pending_count": pending_count,
            "items": [
                {
                    "id": booking["id"],
                    "status": _status(booking.get("status")),
                    "scheduled_date": booking.get("scheduled_date"),
                    "scheduled_time_slot": booking.get("scheduled_time_slot"),
                    "city": booking.get("city"),
                    "waste_category": booking.get("waste_category_name") or "Unknown",
                    "final_amount_lkr": booking.get("final_amount_lkr"),
                }
                for booking in bookings
            ],
        }

    def get_user_rewards(self, user_id: str, auth: AuthContext) -> Dict[str, Any]:
        auth_user_id = self._require_auth(auth)
        self._require_role(auth, (Role.CUSTOMER,), "get_user_rewards")
        self._require_owner(auth_user_id, user_id, "Users can only access their own rewards")

        start, end, year_month = _month_range(self._clock())
        return {
            "total_points": self._store.sum_points(user_id),
            "month_points": self._store.sum_points(user_id, since=start, until=end),
            "year_month": year_month,
            "recent_transactions": self._store.list_points_transactions(user_id, limit=5),
        }

    def get_user_notifications(self, user_id: str, auth: AuthContext) -> Dict[str, Any]:
        auth_user_id = self._require_auth(auth)
        self._require_owner(auth_user_id, user_id, "Users can only access their own notifications")

        notifications = self._store.list_notifications(user_id, limit=30)
        latest = notifications[:10]
        return {
            "unread_count": sum(1 for item in notifications if not item.get("is_read")),
            "total_recent": len(latest),
            "items": latest,
        }

    def get_driver_assigned_bookings(self, driver_id: str, auth: AuthContext) -> Dict[str, Any]:
        auth_user_id = self._require_auth(auth)
        self._require_role(auth, (Role.DRIVER,), "get_driver_assigned_bookings")
        self._require_owner(auth_user_id, driver_id, "Drivers can only access bookings assigned to themselves")

        bookings = self._store.list_driver_bookings(driver_id, limit=15)
        items = [
            {
                "id": booking["id"],
                "status": _status(booking.get("status")),
                "scheduled_date": booking.get("scheduled_date"),
                "scheduled_time_slot": booking.get("scheduled_time_slot"),
                "city": booking.get("city"),
                "address_line1": booking.get("address_line1"),
                "waste_category": booking.get("waste_category_name") or "Unknown",
            }
            for booking in bookings
        ]
        return {
            "total": len(items),
            "active_count": sum(1 for item in items if item["status"] in DRIVER_ACTIVE_STATUSES),
            "items": items,
        }

    def get_admin_booking_summary(self, auth: AuthContext) -> Dict[str, Any]:
        self._require_auth(auth)
        self._require_role(auth, _ADMIN_ROLES, "get_admin_booking_summary")

        counts: Dict[str, int] = {}
        for status, count in self._store.booking_status_counts().items():
            key = _status(status)
            counts[key] = counts.get(key, 0) + count
        return {
            "total_bookings": self._store.count_bookings(),
            "pending_pickups": sum(counts.get(status, 0) for status in ADMIN_PENDING_STATUSES),
            "unassigned_bookings": self._store.count_unassigned_bookings(UNASSIGNED_STATUSES),
            "counts_by_status": counts,
        }

    def get_waste_types_and_rates(self) -> List[Dict[str, Any]]:
        rows = []
        for category in self._store.list_active_waste_categories():
            pricing = category.get("pricing") or {}
            if not pricing.get("is_active", True):
                pricing = {}
            low = pricing.get("min_price_lkr_per_kg")
            high = pricing.get("max_price_lkr_per_kg")
            rows.append(
                {
                    "id": category["id"],
                    "name": category.get("name", ""),
                    "slug": category.get("slug") or normalize_waste_name(category.get("name")),
                    "min_price_lkr_per_kg": low,
                    "max_price_lkr_per_kg": high,
                    "rate_per_kg": round((low + high) / 2, 2) if low is not None and high is not None else None,
                }
            )
        return rows

    def get_reward_rules(self) -> Dict[str, Any]:
        return {
            "base_rates": dict(BASE_POINT_RATES),
            "e_waste_bonus": E_WASTE_BONUS_POINTS,
            "multipliers": dict(MULTIPLIERS),
            "multiplier_policy": "Use highest applicable multiplier only.",
            "award_condition": "Points are awarded when booking status becomes COMPLETED.",
            "formula": "round((basePoints + bonusPoints) * multiplier)",
        }

    @staticmethod
    def _require_auth(auth: AuthContext) -> str:
        if not auth.is_authenticated or not auth.user_id:
            raise PermissionDenied("Authentication required", rule="authentication")
        return auth.user_id

    @staticmethod
    def _require_role(auth: AuthContext, allowed: Sequence[Role], tool_name: str) -> None:
        if auth.role is not Role.GUEST and auth.role in allowed:
            return
        if auth.role.is_admin and tool_name.startswith("get_user"):
            reason = "Admin role cannot use customer-scoped tool without impersonation."
        else:
            reason = "Required role: " + ", ".join(role.value for role in allowed)
        raise PermissionDenied(f"{tool_name} forbidden. {reason}", rule="role")

    @staticmethod
    def _require_owner(auth_user_id: str, requested_id: str, message: str) -> None:
        if auth_user_id != requested_id:
            raise PermissionDenied(message, rule="ownership")
