"""Stripe service - Hosted checkout and billing portal sessions"""

import logging
from typing import Optional

import stripe

from ...config import STRIPE_SECRET_KEY
from ...errors import ConfigurationError, ProviderUnavailable
from ...security_utils import mask_sensitive_data

logger = logging.getLogger(__name__)


class StripeGateway:
    """Service for Stripe API operations"""

    def __init__(self, api_key: Optional[str] = STRIPE_SECRET_KEY):
        self.api_key = api_key
        if not self.api_key:
            logger.warning("STRIPE_SECRET_KEY not set; billing endpoints will fail until configured")

    def _require_key(self):
        if not self.api_key:
            raise ConfigurationError("Billing service not configured")

    def create_checkout_session(
        self,
        price_id: str,
        user_id: str,
        success_url: str,
        cancel_url: str,
        customer_id: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> dict:
        """Create a subscription-mode checkout session bound to user_id"""
        self._require_key()

        params = {
            "mode": "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            # Both are read back by the webhook reconciler; client_reference_id wins
            "client_reference_id": user_id,
            "metadata": {"supabase_user_id": user_id},
        }
        if customer_id:
            params["customer"] = customer_id
        elif customer_email:
            params["customer_email"] = customer_email

        try:
            session = stripe.checkout.Session.create(api_key=self.api_key, **params)
        except stripe.StripeError as e:
            logger.error(f"Failed to create checkout session for user {user_id}: {e}")
            raise ProviderUnavailable("Checkout failed") from e

        return {"id": session["id"], "url": session["url"]}

    def create_portal_session(self, customer_id: str, return_url: str) -> dict:
        """Create a hosted billing-portal session"""
        self._require_key()

        try:
            session = stripe.billing_portal.Session.create(
                api_key=self.api_key,
                customer=customer_id,
                return_url=return_url,
            )
        except stripe.StripeError as e:
            logger.error(f"Failed to create portal session for customer {mask_sensitive_data(customer_id)}: {e}")
            raise ProviderUnavailable("Failed to create portal session") from e

        return {"id": session["id"], "url": session["url"]}


def get_stripe_gateway() -> StripeGateway:
    """Dependency injection for the Stripe gateway"""
    return StripeGateway()
