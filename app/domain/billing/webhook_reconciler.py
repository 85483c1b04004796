"""
Stripe webhook reconciler

Verifies inbound Stripe events against the raw request body and applies the
checkout-completed entitlement transition. The transition is a same-value
field set, so redelivered events converge on the same end state without a
processed-event ledger.
"""

import json
import logging
from typing import Optional

import stripe
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import STRIPE_WEBHOOK_SECRET
from ...errors import ConfigurationError, InvalidSignature, PersistenceFailed
from ...security_utils import log_security_event, mask_sensitive_data
from .repository import EntitlementStore

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
SIGNATURE_TOLERANCE_SECONDS = 300


def extract_user_id(session: dict) -> Optional[str]:
    """client_reference_id first, then metadata.supabase_user_id"""
    metadata = session.get("metadata") or {}
    return session.get("client_reference_id") or metadata.get("supabase_user_id")


def extract_customer_id(session: dict) -> Optional[str]:
    customer = session.get("customer")
    if isinstance(customer, dict):
        return customer.get("id")
    return customer or None


class WebhookReconciler:
    """Translate verified Stripe events into entitlement changes"""

    def __init__(self, db: Session, webhook_secret: Optional[str] = STRIPE_WEBHOOK_SECRET):
        self.db = db
        self.webhook_secret = webhook_secret
        self.repo = EntitlementStore()

    def verify(self, raw_body: bytes, signature_header: Optional[str]) -> dict:
        """Check the stripe-signature header against the unmodified body; returns the event"""
        if not self.webhook_secret:
            logger.error("❌ STRIPE_WEBHOOK_SECRET not configured")
            raise ConfigurationError()

        if not signature_header:
            log_security_event("webhook_missing_signature", details={"provider": "stripe"})
            raise InvalidSignature("Missing stripe-signature")

        try:
            stripe.Webhook.construct_event(
                raw_body,
                signature_header,
                self.webhook_secret,
                tolerance=SIGNATURE_TOLERANCE_SECONDS,
            )
        except (ValueError, stripe.SignatureVerificationError) as e:
            log_security_event(
                "webhook_invalid_signature",
                details={"provider": "stripe", "reason": type(e).__name__},
            )
            raise InvalidSignature() from e

        # construct_event already parsed the same bytes, so this cannot fail here
        return json.loads(raw_body)

    def handle_event(self, raw_body: bytes, signature_header: Optional[str]) -> bool:
        """
        Verify then apply. Returns True when entitlement state was written.

        Raises:
            InvalidSignature: verification failed; nothing was touched
            PersistenceFailed: the update errored; Stripe should retry
        """
        event = self.verify(raw_body, signature_header)
        return self.apply(event)

    def apply(self, event: dict) -> bool:
        event_type = event.get("type")
        logger.info(f"🔔 Stripe webhook received id={event.get('id')} type={event_type}")

        if event_type != CHECKOUT_COMPLETED:
            logger.debug(f"Ignoring Stripe event type {event_type}")
            return False

        session = (event.get("data") or {}).get("object") or {}
        user_id = extract_user_id(session)
        if not user_id:
            # Retrying cannot repair a malformed event, so acknowledge it
            logger.warning(
                f"⚠️ checkout.session.completed {session.get('id')} carries no user reference; skipping"
            )
            return False

        customer_id = extract_customer_id(session)
        try:
            matched = self.repo.mark_paid(self.db, user_id, customer_id)
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to update profile plan for user {user_id}: {e}")
            raise PersistenceFailed("DB update failed") from e

        if not matched:
            logger.warning(f"⚠️ No profile found for user {user_id}; entitlement not recorded")
            return False

        logger.info(f"✅ User {user_id} plan set to paid via webhook (customer={mask_sensitive_data(customer_id)})")
        return True
