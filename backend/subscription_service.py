"""
Subscription service - keeps a user's SubscriptionState under the `subscription`
key of their profile metadata and runs the entitlement tracker over it.
"""
import copy
import logging
from datetime import date
from typing import Any, Dict, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from entitlements import EntitlementTracker
from models import UserProfile
from schemas import ExpirationCheck, ScanPermission, SubscriptionPlan, SubscriptionState

logger = logging.getLogger(__name__)

SUBSCRIPTION_KEY = "subscription"


class PersistenceError(Exception):
    """The profile store rejected a write; the computed state is not committed."""


class ProfileStore(Protocol):
    def get_metadata(self, user_id: str) -> Dict[str, Any]:
        ...

    def update_metadata(self, user_id: str, metadata: Dict[str, Any]) -> None:
        ...


class SqlProfileStore:
    """Profile metadata bags kept in the user_profiles table"""

    def __init__(self, db: Session):
        self.db = db

    def get_metadata(self, user_id: str) -> Dict[str, Any]:
        profile = self.db.query(UserProfile).filter(UserProfile.id == user_id).first()
        if not profile or not isinstance(profile.profile_metadata, dict):
            return {}
        return copy.deepcopy(profile.profile_metadata)

    def update_metadata(self, user_id: str, metadata: Dict[str, Any]) -> None:
        try:
            profile = self.db.query(UserProfile).filter(UserProfile.id == user_id).first()
            if not profile:
                profile = UserProfile(id=user_id)
                self.db.add(profile)
            profile.profile_metadata = copy.deepcopy(metadata)
            flag_modified(profile, "profile_metadata")
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to save profile {user_id}: {e}") from e


class SubscriptionService:
    """Reads, checks and writes back a user's subscription."""

    def __init__(self, profile_store: ProfileStore, tracker: Optional[EntitlementTracker] = None):
        self.profile_store = profile_store
        self.tracker = tracker or EntitlementTracker()

    def get_user_subscription(self, user_id: str, today: date) -> SubscriptionState:
        """Stored subscription, or a fresh free plan when there is none"""
        metadata = self.profile_store.get_metadata(user_id)
        return self.tracker.load_state(metadata.get(SUBSCRIPTION_KEY), today)

    def _save(self, user_id: str, state: SubscriptionState):
        # Keep every other key of the metadata bag as it is
        metadata = self.profile_store.get_metadata(user_id)
        metadata[SUBSCRIPTION_KEY] = state.to_metadata()
        self.profile_store.update_metadata(user_id, metadata)

    def initialize_user_subscription(self, user_id: str, today: date) -> Optional[SubscriptionState]:
        """
        Give a user the free plan if they have no subscription yet.

        Returns the (possibly existing) subscription, or None when it could not be saved.
        """
        metadata = self.profile_store.get_metadata(user_id)
        if metadata.get(SUBSCRIPTION_KEY):
            return self.tracker.load_state(metadata[SUBSCRIPTION_KEY], today)

        state = self.tracker.initialize(None, today)
        try:
            self._save(user_id, state)
        except PersistenceError as e:
            logger.error(f"Error initializing subscription for {user_id}: {e}")
            return None
        logger.info(f"Initialized free subscription for {user_id}")
        return state

    def check_expiration(self, user_id: str, today: date) -> ExpirationCheck:
        """Raises PersistenceError if an expired plan could not be downgraded in storage."""
        state = self.get_user_subscription(user_id, today)
        result = self.tracker.check_expiration(state, today)
        if result.is_expired:
            self._save(user_id, result.state)
        return result

    def can_perform_scan(self, user_id: str, today: date) -> ScanPermission:
        """Raises PersistenceError if an expired plan could not be downgraded in storage."""
        state = self.get_user_subscription(user_id, today)
        permission = self.tracker.can_perform_scan(state, today)
        if permission.is_expired:
            self._save(user_id, state)
        return permission

    def increment_scan_count(self, user_id: str, today: date) -> bool:
        state = self.get_user_subscription(user_id, today)
        self.tracker.increment_scan_count(state, today)
        try:
            self._save(user_id, state)
        except PersistenceError as e:
            logger.error(f"Error incrementing scan count for {user_id}: {e}")
            return False
        return True

    def update_subscription_plan(self, user_id: str, new_plan: SubscriptionPlan, today: date) -> bool:
        state = self.get_user_subscription(user_id, today)
        self.tracker.update_subscription_plan(state, new_plan, today)
        try:
            self._save(user_id, state)
        except PersistenceError as e:
            logger.error(f"Error updating subscription plan for {user_id}: {e}")
            return False
        logger.info(f"User {user_id} moved to {state.plan.value} plan (expires {state.expires_at})")
        return True

    def can_view_photos(self, user_id: str, today: date) -> bool:
        return self.tracker.can_view_photos(self.get_user_subscription(user_id, today))
