"""
Entitlement tracker - plan limits, daily scan quota and plan expiration

All operations work on a SubscriptionState and an explicit `today`; none of
them reads the clock or touches storage. States are mutated in place and
returned so callers can persist them.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional

from pydantic import ValidationError

from config import FREE_PLAN, PLAN_DETAILS, PLAN_LIMITS, PlanDetails, PlanLimits, UNLIMITED_SCANS
from schemas import (
    DailyScans,
    ExpirationCheck,
    ScanPermission,
    SubscriptionPlan,
    SubscriptionState,
)

logger = logging.getLogger(__name__)


def _plan_key(plan) -> str:
    return plan.value if isinstance(plan, SubscriptionPlan) else str(plan)


def get_plan_limits(plan) -> PlanLimits:
    return PLAN_LIMITS.get(_plan_key(plan), PLAN_LIMITS[FREE_PLAN])


def get_plan_details(plan) -> PlanDetails:
    return PLAN_DETAILS.get(_plan_key(plan), PLAN_DETAILS[FREE_PLAN])


def format_remaining_scans(remaining_scans: int) -> str:
    """-1 is the unlimited sentinel"""
    if remaining_scans == UNLIMITED_SCANS:
        return "∞"
    return str(remaining_scans)


def fresh_daily_scans(today: date) -> DailyScans:
    return DailyScans(count=0, last_reset_date=today.isoformat())


class EntitlementTracker:
    """Scan quota and plan lifecycle over a user's SubscriptionState."""

    def new_state(self, today: date, now: Optional[datetime] = None) -> SubscriptionState:
        now = now or datetime.utcnow()
        return SubscriptionState(
            plan=SubscriptionPlan.FREE,
            daily_scans=fresh_daily_scans(today),
            created_at=now.isoformat(),
        )

    def load_state(self, raw: Optional[Dict[str, Any]], today: date) -> SubscriptionState:
        """
        Read a stored subscription blob.

        Missing or malformed data never raises; it reads as a fresh free plan.
        """
        if not raw or not isinstance(raw, dict):
            return self.new_state(today)

        # Only the counter is defaulted; plan and expiry are kept
        if raw.get("dailyScans") is None and raw.get("daily_scans") is None:
            raw = {**raw, "dailyScans": fresh_daily_scans(today).model_dump(by_alias=True)}

        try:
            return SubscriptionState.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Malformed subscription data, treating as free plan: {e.error_count()} errors")
            return self.new_state(today)

    def initialize(self, state: Optional[SubscriptionState], today: date,
                   now: Optional[datetime] = None) -> SubscriptionState:
        """Create a free subscription when none exists; otherwise leave it untouched."""
        if state is not None:
            return state
        return self.new_state(today, now)

    def check_expiration(self, state: SubscriptionState, today: date) -> ExpirationCheck:
        """
        Downgrade an expired paid plan to free, in place.

        YYYY-MM-DD strings compare correctly as plain strings.
        """
        if state.plan == SubscriptionPlan.FREE:
            return ExpirationCheck(is_expired=False, state=state)

        # A paid plan without an expiry date cannot be honoured
        if state.expires_at and not today.isoformat() > state.expires_at:
            return ExpirationCheck(is_expired=False, state=state)

        logger.info(f"Subscription {state.plan.value} expired on {state.expires_at}, downgrading to free")
        state.plan = SubscriptionPlan.FREE
        state.expires_at = None
        state.daily_scans = fresh_daily_scans(today)
        return ExpirationCheck(is_expired=True, state=state)

    def can_perform_scan(self, state: SubscriptionState, today: date) -> ScanPermission:
        """
        Check if one more scan is allowed today.

        A new day is only observed here; the counter reset itself is committed
        by the next increment_scan_count.
        """
        expiration = self.check_expiration(state, today)
        limits = get_plan_limits(state.plan)

        if limits.unlimited:
            return ScanPermission(can_scan=True, remaining_scans=UNLIMITED_SCANS,
                                  is_expired=expiration.is_expired)

        daily_scans = state.daily_scans
        if daily_scans.last_reset_date != today.isoformat():
            return ScanPermission(can_scan=True, remaining_scans=limits.daily_scans - 1,
                                  is_expired=expiration.is_expired)

        remaining = limits.daily_scans - daily_scans.count
        return ScanPermission(
            can_scan=remaining > 0,
            remaining_scans=max(0, remaining),
            is_expired=expiration.is_expired,
        )

    def increment_scan_count(self, state: SubscriptionState, today: date) -> SubscriptionState:
        """Count one consumed scan. No limit check: call can_perform_scan first."""
        if state.daily_scans.last_reset_date != today.isoformat():
            state.daily_scans = fresh_daily_scans(today)
        state.daily_scans.count += 1
        return state

    def update_subscription_plan(self, state: SubscriptionState, new_plan: SubscriptionPlan,
                                 today: date, now: Optional[datetime] = None) -> SubscriptionState:
        new_plan = SubscriptionPlan(new_plan)
        now = now or datetime.utcnow()

        state.plan = new_plan
        state.updated_at = now.isoformat()
        duration = get_plan_details(new_plan).duration_days
        if new_plan == SubscriptionPlan.FREE or not duration:
            state.expires_at = None
        else:
            state.expires_at = (today + timedelta(days=duration)).isoformat()
        # Changing plan always restarts the daily counter
        state.daily_scans = fresh_daily_scans(today)
        return state

    def can_view_photos(self, state: Optional[SubscriptionState]) -> bool:
        if state is None:
            return PLAN_LIMITS[FREE_PLAN].show_photo
        return get_plan_limits(state.plan).show_photo
