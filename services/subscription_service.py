"""
services/subscription_service.py
--------------------------------
Business logic behind the user-facing subscription commands.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from config import DEFAULT_CURRENCY, DUE_LOOKAHEAD_DAYS
from exceptions import DateArithmeticError
from models.subscription import BillingCycle, Subscription
from repositories.subscription_repo import SubscriptionRepository
from services.billing_calendar import first_billing_date, local_today, normalize
from services.due_window import is_due
from utils.logger import get_logger

logger = get_logger(__name__)


class SubscriptionService:
    """
    Handles all business logic for subscriptions.

    Responsibilities:
        - Create subscriptions with a valid next billing date.
        - List, delete, and route reminders for a user's subscriptions.
    """

    def __init__(self, repo: Optional[SubscriptionRepository] = None):
        self.repo = repo or SubscriptionRepository()

    def add_manual(
        self,
        owner_user_id: int,
        name: str,
        price,
        billing_cycle: str,
        next_billing_date: Optional[date] = None,
        notification_target: Optional[str] = None,
        today: Optional[date] = None,
    ) -> dict:
        """
        Create a subscription from already-parsed fields.

        A missing date means "one cycle from today"; a past date is rolled
        forward so the stored date is never stale.

        Returns:
            Dict with 'success' and 'message', or 'success' False and 'error'.
        """
        today = today or local_today()
        try:
            cycle = BillingCycle.parse(billing_cycle)
            if next_billing_date is None:
                next_billing_date = first_billing_date(cycle, today)
            else:
                next_billing_date = normalize(next_billing_date, cycle, today)
            subscription = Subscription(
                owner_user_id=owner_user_id,
                name=name.strip(),
                price=price,
                billing_cycle=cycle,
                next_billing_date=next_billing_date,
                notification_target=notification_target,
                currency=DEFAULT_CURRENCY,
            )
        except (DateArithmeticError, ValueError) as e:
            logger.warning(f"Rejected subscription from user {owner_user_id}: {e}")
            return {"success": False, "error": str(e)}

        saved = self.repo.add(subscription)
        msg = (
            f"🔁 Subscription added:\n"
            f"  📌 Name: {saved.name}\n"
            f"  💶 Price: {saved.price:.2f} {saved.currency}\n"
            f"  🔄 Cycle: {saved.billing_cycle.value}\n"
            f"  📅 Next charge: {saved.next_billing_date}\n"
            f"  🔖 ID: #{saved.id}"
        )
        if not saved.has_target:
            msg += "\n\n🔕 Reminders are off. Send /notify_here to receive them in this chat."
        return {"success": True, "message": msg}

    def list_active(self, owner_user_id: int, today: Optional[date] = None) -> str:
        """Formatted list of active subscriptions with the monthly commitment."""
        today = today or local_today()
        subscriptions = self.repo.get_all(owner_user_id, active_only=True)
        if not subscriptions:
            return "📭 No subscriptions yet. Add one with /add_subscription."

        lines = ["🔁 Active subscriptions:\n"]
        monthly_total = Decimal("0")
        for sub in subscriptions:
            soon = " ⏰" if is_due(sub, today, DUE_LOOKAHEAD_DAYS) else ""
            lines.append(f"  #{sub.id} {sub}{soon}")
            if sub.billing_cycle == BillingCycle.MONTHLY:
                monthly_total += sub.price
            else:
                monthly_total += sub.price / 12

        lines.append(f"\n💶 Monthly commitment: {monthly_total:.2f} {DEFAULT_CURRENCY}")
        return "\n".join(lines)

    def delete_subscription(self, subscription_id: int, owner_user_id: int) -> str:
        if self.repo.delete(subscription_id, owner_user_id):
            return f"🗑️ Subscription #{subscription_id} deleted."
        return f"⚠️ Subscription #{subscription_id} not found."

    def route_reminders(self, owner_user_id: int, target: Optional[str]) -> str:
        """Send the user's reminders to ``target``; None turns them off."""
        count = self.repo.set_target_for_owner(owner_user_id, target)
        if target is None:
            return f"🔕 Reminders muted for {count} subscription(s)."
        return f"🔔 Reminders for {count} subscription(s) will be sent here."
