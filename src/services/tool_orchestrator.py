from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Set

from src.orchestrator.intents import ChatMode, Role
from src.orchestrator.state import AuthContext, SuggestedAction, ToolContext
from src.services import intent_rules
from src.services import tool_formatters as fmt
from src.services.chat_tools import ChatTools

logger = logging.getLogger(__name__)

SIGN_IN_ACTION = SuggestedAction("Sign in", "/login")
BOOKING_HISTORY_ACTION = SuggestedAction("Go to Booking History", "/users/bookings")
PENDING_PICKUPS_ACTION = SuggestedAction("Pending pickups", "/users/pending-pickups")
REWARDS_ACTION = SuggestedAction("View Rewards", "/users/rewards")
DRIVER_BOOKINGS_ACTION = SuggestedAction("Open Driver Bookings", "/driver/bookings")
ADMIN_BOOKINGS_ACTION = SuggestedAction("Open Admin Bookings", "/admin/bookings")


def notifications_action(role: Role) -> SuggestedAction:
    if role is Role.DRIVER:
        return SuggestedAction("Open Notifications", "/driver/notifications")
    if role.is_admin:
        return SuggestedAction("Open Notifications", "/admin/notifications")
    return SuggestedAction("Open Notifications", "/users/notifications")


class _ToolRun:
    """Runs each named tool at most once and records its outcome in a context."""

    def __init__(self, context: ToolContext) -> None:
        self.context = context
        self._executed: Set[str] = set()

    def __call__(
        self,
        tool_name: str,
        runner: Callable[[], Any],
        formatter: Callable[[Any], str],
        source: str,
        action: Optional[SuggestedAction] = None,
    ) -> None:
        if tool_name in self._executed:
            return
        self._executed.add(tool_name)
        try:
            data = runner()
        except Exception as exc:
            logger.warning("Tool %s failed: %s", tool_name, exc)
            self.context.blocks.append(fmt.format_tool_failure(tool_name, exc))
            return
        self.context.called_tools.append(tool_name)
        self.context.sources.append(source)
        self.context.blocks.append(formatter(data))
        if action is not None:
            self.context.suggested_actions.append(action)


class ToolOrchestrator:
    """Selects and executes catalog and private-data tools for a chat turn."""

    def __init__(self, tools: ChatTools) -> None:
        self._tools = tools

    def collect_catalog_context(self, question: str) -> ToolContext:
        context = ToolContext()
        q = question.lower()

        if intent_rules.is_waste_pricing_query(q):
            try:
                waste_types = self._tools.get_waste_types_and_rates()
            except Exception as exc:
                logger.warning("Tool get_waste_types_and_rates failed: %s", exc)
                context.blocks.append(fmt.format_catalog_failure("get_waste_types_and_rates", exc))
            else:
                context.called_tools.append("get_waste_types_and_rates")
                context.sources.append("db:waste_types_and_rates")
                context.blocks.append(fmt.format_waste_types(waste_types))
                context.suggested_actions.append(SuggestedAction("Waste Types & Pricing", "/admin/waste"))

        if intent_rules.is_reward_rules_query(q):
            try:
                rules = self._tools.get_reward_rules()
            except Exception as exc:
                logger.warning("Tool get_reward_rules failed: %s", exc)
                context.blocks.append(fmt.format_catalog_failure("get_reward_rules", exc))
            else:
                context.called_tools.append("get_reward_rules")
                context.sources.append("db:reward_rules")
                context.blocks.append(fmt.format_reward_rules(rules))
                context.suggested_actions.append(SuggestedAction("How Rewards Work", "/users/rewards"))

        return context

    def collect_data_context(self, question: str, auth: AuthContext, mode: ChatMode) -> ToolContext:
        context = ToolContext()
        if mode is ChatMode.KNOWLEDGE:
            return context

        q = question.lower()
        run = _ToolRun(context)
        role = auth.role
        user_id = auth.user_id

        if intent_rules.asks_private_data(q) and not auth.is_authenticated:
            context.blocks.append(
                "Permission check: requester is not authenticated. Personal data tools were not executed."
            )
            context.suggested_actions.append(SIGN_IN_ACTION)
            return context

        asks_admin_summary = intent_rules.asks_admin_summary(q)
        if asks_admin_summary and not role.is_admin:
            context.blocks.append(f"Permission check: role {role.value} cannot access admin-wide booking summaries.")
            if role is Role.CUSTOMER:
                context.suggested_actions.append(BOOKING_HISTORY_ACTION)
            elif role is Role.DRIVER:
                context.suggested_actions.append(DRIVER_BOOKINGS_ACTION)

        if role is Role.DRIVER and intent_rules.asks_unassigned(q):
            context.blocks.append(
                "Permission check: drivers can only access bookings assigned to themselves. "
                "Unassigned booking details were not returned."
            )
            context.suggested_actions.append(DRIVER_BOOKINGS_ACTION)

        if intent_rules.is_profile_query(q) and auth.is_authenticated:
            run(
                "get_current_user_profile",
                lambda: self._tools.get_current_user_profile(auth),
                fmt.format_profile,
                "tool:get_current_user_profile",
            )

        wants_pending = intent_rules.is_pending_pickups_query(q)
        wants_bookings = intent_rules.is_bookings_query(q) or wants_pending

        if wants_bookings and role is Role.CUSTOMER and user_id:
            run(
                "get_user_bookings",
                lambda: self._tools.get_user_bookings(user_id, auth, pending_only=wants_pending),
                lambda data: fmt.format_user_bookings(data, wants_pending),
                "tool:get_user_bookings",
                PENDING_PICKUPS_ACTION if wants_pending else BOOKING_HISTORY_ACTION,
            )

        if intent_rules.is_rewards_query(q) and role is Role.CUSTOMER and user_id:
            run(
                "get_user_rewards",
                lambda: self._tools.get_user_rewards(user_id, auth),
                fmt.format_user_rewards,
                "tool:get_user_rewards",
                REWARDS_ACTION,
            )

        if intent_rules.is_notifications_query(q) and auth.is_authenticated and user_id:
            run(
                "get_user_notifications",
                lambda: self._tools.get_user_notifications(user_id, auth),
                fmt.format_notifications,
                "tool:get_user_notifications",
                notifications_action(role),
            )

        wants_assigned = intent_rules.is_assigned_bookings_query(q) or wants_bookings
        if wants_assigned and role is Role.DRIVER and user_id:
            run(
                "get_driver_assigned_bookings",
                lambda: self._tools.get_driver_assigned_bookings(user_id, auth),
                lambda data: fmt.format_driver_bookings(data, wants_pending),
                "tool:get_driver_assigned_bookings",
                DRIVER_BOOKINGS_ACTION,
            )

        if role.is_admin and (asks_admin_summary or wants_pending):
            run(
                "get_admin_booking_summary",
                lambda: self._tools.get_admin_booking_summary(auth),
                fmt.format_admin_summary,
                "tool:get_admin_booking_summary",
                ADMIN_BOOKINGS_ACTION,
            )

        return context
