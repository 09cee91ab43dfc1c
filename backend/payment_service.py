"""
Plan upgrade flow - charge through the payment gateway, then switch plan
"""
import logging
from datetime import date
from typing import Any, Dict, Protocol

from config import PAYMENT_CURRENCY
from entitlements import get_plan_details
from schemas import PaymentResult, PaymentStatus, SubscriptionPlan, UpgradeOutcome
from subscription_service import SubscriptionService

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    def charge(self, amount: int, currency: str, method: str, details: Dict[str, Any]) -> PaymentResult:
        ...


STATUS_MESSAGES = {
    PaymentStatus.SUCCEEDED: "Your subscription has been activated.",
    PaymentStatus.PENDING: "Payment is pending. Your plan will change once it succeeds.",
    PaymentStatus.REQUIRES_ACTION: "Payment requires additional authentication.",
    PaymentStatus.FAILED: "Payment failed.",
}


class PlanUpgradeService:
    """Changes a user's plan only after the gateway reports a succeeded charge."""

    def __init__(self, gateway: PaymentGateway, subscriptions: SubscriptionService):
        self.gateway = gateway
        self.subscriptions = subscriptions

    def upgrade(self, user_id: str, plan: SubscriptionPlan, method: str,
                details: Dict[str, Any], today: date) -> UpgradeOutcome:
        plan = SubscriptionPlan(plan)
        plan_details = get_plan_details(plan)

        if plan_details.amount <= 0:
            # Free plan, nothing to charge
            activated = self.subscriptions.update_subscription_plan(user_id, plan, today)
            return UpgradeOutcome(
                status=PaymentStatus.SUCCEEDED if activated else PaymentStatus.FAILED,
                activated=activated,
                message=f"Switched to the {plan_details.name} plan." if activated
                else "Could not save the subscription change.",
            )

        try:
            payment = self.gateway.charge(plan_details.amount, PAYMENT_CURRENCY, method, details)
        except Exception as e:
            logger.error(f"Payment for {user_id} ({plan.value}) failed: {e}")
            return UpgradeOutcome(status=PaymentStatus.FAILED, message=f"Payment failed: {e}")

        logger.info(f"Payment {payment.reference} for {user_id} ({plan.value}): {payment.status.value}")
        if payment.status != PaymentStatus.SUCCEEDED:
            return UpgradeOutcome(
                status=payment.status,
                reference=payment.reference,
                message=STATUS_MESSAGES[payment.status],
            )

        activated = self.subscriptions.update_subscription_plan(user_id, plan, today)
        return UpgradeOutcome(
            status=payment.status,
            reference=payment.reference,
            activated=activated,
            message=STATUS_MESSAGES[payment.status] if activated
            else "Payment succeeded but the subscription could not be saved.",
        )
