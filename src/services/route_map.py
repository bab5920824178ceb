from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from src.orchestrator.intents import Role
from src.orchestrator.state import SuggestedAction

_CUSTOMER_SCOPE = (Role.CUSTOMER, Role.ADMIN, Role.SUPER_ADMIN)
_ADMIN_SCOPE = (Role.ADMIN, Role.SUPER_ADMIN)


@dataclass(frozen=True)
class RouteEntry:
    path: str
    title: str
    description: str
    actions: Tuple[str, ...]
    allowed_roles: Tuple[Role, ...]
    canonical_path: Optional[str] = None

    @property
    def href(self) -> str:
        return self.canonical_path or self.path

    def allows(self, role: Role) -> bool:
        return role in self.allowed_roles


ROUTE_MAP: Tuple[RouteEntry, ...] = (
    RouteEntry(
        path="/users/dashboard",
        title="User Dashboard",
        description="Overview for customers with booking stats, recent activity, and shortcuts.",
        actions=("View personal booking snapshot", "Navigate to booking history or new booking flow"),
        allowed_roles=_CUSTOMER_SCOPE,
    ),
    RouteEntry(
        path="/users/bookings/new",
        title="Book a Pickup",
        description="Customer booking form. Assistant drafts are prefilled here; location and terms are confirmed on the form.",
        actions=("Choose waste category and weight", "Pick the map location and accept terms"),
        allowed_roles=(Role.CUSTOMER,),
    ),
    RouteEntry(
        path="/users/bookings",
        title="Booking History",
        description="Customer list of bookings with filters and status tracking.",
        actions=("Review booking status timeline", "Open booking detail pages"),
        allowed_roles=_CUSTOMER_SCOPE,
    ),
    RouteEntry(
        path="/users/rewards",
        title="User Rewards",
        description="Customer points summary, monthly progress, and recent awards.",
        actions=("Check total and monthly points", "Review recent points transactions"),
        allowed_roles=_CUSTOMER_SCOPE,
    ),
    RouteEntry(
        path="/users/notifications",
        title="User Notifications",
        description="Customer notifications feed for booking and system updates.",
        actions=("Read latest notifications", "Track booking-related alerts"),
        allowed_roles=_CUSTOMER_SCOPE,
    ),
    RouteEntry(
        path="/users/pending-pickups",
        title="Pending Pickups",
        description="Customer-focused pending booking queue for active pickups.",
        actions=("View bookings awaiting completion", "Monitor active pickup progress"),
        allowed_roles=_CUSTOMER_SCOPE,
    ),
    RouteEntry(
        path="/driver/bookings",
        title="Driver Bookings",
        description="Driver-assigned booking queue and execution workspace.",
        actions=("View assigned bookings", "Start, collect, or cancel assigned pickups"),
        allowed_roles=(Role.DRIVER,),
    ),
    RouteEntry(
        path="/driver/notifications",
        title="Driver Notifications",
        description="Driver alerts for assignment and pickup lifecycle events.",
        actions=("Review assignment updates", "Track status change alerts"),
        allowed_roles=(Role.DRIVER,),
    ),
    RouteEntry(
        path="/admin/dashboard",
        title="Admin Dashboard",
        description="Admin operational overview with metrics, revenue, and activity.",
        actions=("Monitor totals and trends", "Drill into bookings and operations"),
        allowed_roles=_ADMIN_SCOPE,
    ),
    RouteEntry(
        path="/admin/bookings",
        title="Admin Bookings",
        description="Admin booking management for assignment, status updates, and review.",
        actions=("Assign drivers", "Update booking statuses with transition checks"),
        allowed_roles=_ADMIN_SCOPE,
    ),
    RouteEntry(
        path="/admin/drivers",
        title="Admin Drivers",
        description="Admin driver management including status, approval, and profile updates.",
        actions=("View and edit drivers", "Manage operational driver readiness"),
        allowed_roles=_ADMIN_SCOPE,
    ),
    RouteEntry(
        path="/admin/waste-management",
        canonical_path="/admin/waste",
        title="Admin Waste Management",
        description="Admin waste category management. The active page path is /admin/waste.",
        actions=("Create and edit waste categories", "Manage category naming and activation"),
        allowed_roles=_ADMIN_SCOPE,
    ),
)


def list_actions_for_role(
    role: Role,
    limit: int = 6,
    routes: Sequence[RouteEntry] = ROUTE_MAP,
) -> List[SuggestedAction]:
    actions = [SuggestedAction(label=route.title, href=route.href) for route in routes if route.allows(role)]
    return actions[: max(1, limit)]


def render_route_map_markdown(routes: Sequence[RouteEntry] = ROUTE_MAP) -> str:
    lines = [
        "# Route Map",
        "",
        "This file is generated from the assistant route registry and describes key assistant-relevant routes.",
        "",
    ]
    for route in routes:
        lines.append(f"## {route.path}")
        if route.canonical_path and route.canonical_path != route.path:
            lines.append(f"Canonical path: `{route.canonical_path}`")
        lines.append(f"Title: {route.title}")
        lines.append(f"Description: {route.description}")
        lines.append("Allowed roles: " + ", ".join(f"`{role.value}`" for role in route.allowed_roles))
        lines.append("Actions:")
        lines.extend(f"- {action}" for action in route.actions)
        lines.append("")
    return "\n".join(lines).strip() + "\n"
