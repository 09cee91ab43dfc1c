from conftest import FakeGateway

from payment_service import PlanUpgradeService
from schemas import PaymentStatus, SubscriptionPlan
from subscription_service import SubscriptionService


def test_succeeded_payment_activates_plan(gateway, subscriptions, today):
    outcome = PlanUpgradeService(gateway, subscriptions).upgrade(
        "user-1", SubscriptionPlan.MONTHLY_PRO, "gcash", {"phone": "09171234567"}, today
    )

    assert outcome.status == PaymentStatus.SUCCEEDED
    assert outcome.activated is True
    assert outcome.reference == "pay_1"
    assert gateway.charges == [(199, "PHP", "gcash", {"phone": "09171234567"})]

    state = subscriptions.get_user_subscription("user-1", today)
    assert state.plan == SubscriptionPlan.MONTHLY_PRO
    assert state.expires_at == "2024-04-14"


def test_yearly_plan_charges_yearly_amount(gateway, subscriptions, today):
    PlanUpgradeService(gateway, subscriptions).upgrade("user-1", "yearly_pro", "card", {}, today)
    assert gateway.charges[0][0] == 1999


def test_pending_payment_does_not_change_plan(subscriptions, today):
    gateway = FakeGateway(status=PaymentStatus.PENDING)
    outcome = PlanUpgradeService(gateway, subscriptions).upgrade(
        "user-1", SubscriptionPlan.MONTHLY_PRO, "card", {}, today
    )

    assert outcome.status == PaymentStatus.PENDING
    assert outcome.activated is False
    assert subscriptions.get_user_subscription("user-1", today).plan == SubscriptionPlan.FREE


def test_gateway_error_is_reported_as_failed(subscriptions, today):
    gateway = FakeGateway(error=ConnectionError("gateway timeout"))
    outcome = PlanUpgradeService(gateway, subscriptions).upgrade(
        "user-1", SubscriptionPlan.MONTHLY_PRO, "card", {}, today
    )

    assert outcome.status == PaymentStatus.FAILED
    assert outcome.activated is False
    assert "gateway timeout" in outcome.message
    assert subscriptions.get_user_subscription("user-1", today).plan == SubscriptionPlan.FREE


def test_free_plan_needs_no_payment(subscriptions, today):
    subscriptions.update_subscription_plan("user-1", SubscriptionPlan.MONTHLY_PRO, today)

    outcome = PlanUpgradeService(None, subscriptions).upgrade("user-1", SubscriptionPlan.FREE, "card", {}, today)
    assert outcome.activated is True
    assert outcome.reference is None
    assert subscriptions.get_user_subscription("user-1", today).plan == SubscriptionPlan.FREE


def test_paid_but_not_saved(gateway, failing_profile_store, today):
    subscriptions = SubscriptionService(failing_profile_store)
    outcome = PlanUpgradeService(gateway, subscriptions).upgrade(
        "user-1", SubscriptionPlan.MONTHLY_PRO, "card", {}, today
    )

    assert outcome.status == PaymentStatus.SUCCEEDED
    assert outcome.activated is False
    assert "could not be saved" in outcome.message
