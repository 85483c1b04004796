"""Subscription service - Checkout, billing portal and entitlement reads"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...auth import AuthenticatedUser
from ...config import APP_URL
from ...errors import InvalidRequest, NoSubscription, ProfileNotFound, StoreUnavailable
from ...models import Plan, Profile
from .repository import EntitlementStore
from .stripe_service import StripeGateway

logger = logging.getLogger(__name__)

CHECKOUT_SUCCESS_PATH = "/upgrade/success"
CHECKOUT_CANCEL_PATH = "/app?stripe=cancel"
PORTAL_RETURN_PATH = "/settings"


class SubscriptionService:
    """Service for subscription management"""

    def __init__(self, db: Session, gateway: StripeGateway):
        self.db = db
        self.gateway = gateway
        self.repo = EntitlementStore()

    def _profile(self, user_id: str) -> Profile:
        try:
            profile = self.repo.get_profile(self.db, user_id)
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to load profile for user {user_id}: {e}")
            raise StoreUnavailable() from e
        if not profile:
            raise ProfileNotFound()
        return profile

    def create_checkout_session(self, price_id: str, user: AuthenticatedUser) -> dict:
        """
        Create a hosted checkout session for user.

        The plan itself changes only when the checkout.session.completed webhook
        arrives; nothing is written locally here.
        """
        if not price_id:
            raise InvalidRequest("Missing priceId")

        try:
            profile = self.repo.get_profile(self.db, user.id)
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to load profile for user {user.id}: {e}")
            raise StoreUnavailable() from e

        if profile and profile.plan == Plan.PAID.value:
            raise InvalidRequest("Already paid")

        session = self.gateway.create_checkout_session(
            price_id=price_id,
            user_id=user.id,
            success_url=f"{APP_URL}{CHECKOUT_SUCCESS_PATH}",
            cancel_url=f"{APP_URL}{CHECKOUT_CANCEL_PATH}",
            customer_id=profile.stripe_customer_id if profile else None,
            customer_email=(profile.email if profile else None) or user.email,
        )

        logger.info(f"✅ Created checkout session for user {user.id}: {session.get('id')}")
        return {"url": session["url"]}

    def create_portal_session(self, user_id: str) -> dict:
        """Billing portal for users who have completed a checkout"""
        profile = self._profile(user_id)

        if not profile.stripe_customer_id:
            raise NoSubscription()

        session = self.gateway.create_portal_session(
            customer_id=profile.stripe_customer_id,
            return_url=f"{APP_URL}{PORTAL_RETURN_PATH}",
        )

        logger.info(f"✅ Created billing portal session for user {user_id}")
        return {"url": session["url"]}

    def get_entitlement(self, user_id: str) -> dict:
        """Current plan, read by the post-checkout poller and plan-gated features"""
        profile = self._profile(user_id)
        return {
            "plan": profile.plan,
            "has_billing_account": bool(profile.stripe_customer_id),
        }
