"""Billing router - FastAPI endpoints for checkout, webhook and portal"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ...auth import AuthenticatedUser, get_current_user, resolve_bearer, security
from ...database import get_db
from ...errors import InvalidRequest
from ...rate_limiter import create_rate_limiter
from .schemas import CheckoutRequest, EntitlementResponse, RedirectResponse, WebhookAck
from .stripe_service import StripeGateway, get_stripe_gateway
from .subscription_service import SubscriptionService
from .webhook_reconciler import WebhookReconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Billing"])

rate_limit_billing_webhook = create_rate_limiter(
    limit=100, window_seconds=60, key_prefix="stripe_webhook"
)


def get_subscription_service(
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> SubscriptionService:
    """Dependency injection for SubscriptionService"""
    return SubscriptionService(db, gateway)


def get_webhook_reconciler(db: Session = Depends(get_db)) -> WebhookReconciler:
    """Dependency injection for WebhookReconciler"""
    return WebhookReconciler(db)


@router.post("/stripe/checkout", response_model=RedirectResponse)
def create_checkout_session(
    body: CheckoutRequest,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Create a Stripe Checkout session for the bearer of the Authorization header"""
    price_id = (body.price_id or "").strip()
    if not price_id:
        raise InvalidRequest("Missing priceId")

    user = resolve_bearer(credentials)
    return service.create_checkout_session(price_id, user)


@router.post("/stripe/webhook", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    reconciler: WebhookReconciler = Depends(get_webhook_reconciler),
    _: None = Depends(rate_limit_billing_webhook),
):
    """
    Handle Stripe webhook events.

    - 400 on a missing or invalid signature (verified before anything else)
    - 200 {"received": true} for every accepted event, including ignored types
    - 500 when the entitlement update fails, so Stripe redelivers
    """
    # Get raw body BEFORE any parsing - signatures cover the exact bytes
    raw_body = await request.body()
    reconciler.handle_event(raw_body, stripe_signature)
    return WebhookAck()


@router.post("/stripe/portal", response_model=RedirectResponse)
def create_portal_session(
    user: AuthenticatedUser = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Open the Stripe billing portal for the current user"""
    return service.create_portal_session(user.id)


@router.get("/billing/entitlement", response_model=EntitlementResponse)
def get_entitlement(
    user: AuthenticatedUser = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Current plan for the signed-in user"""
    return service.get_entitlement(user.id)
