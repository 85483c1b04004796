"""Billing domain schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CheckoutRequest(BaseModel):
    """Schema for creating a checkout session"""

    model_config = ConfigDict(populate_by_name=True)

    # Presence is checked by the route so a missing priceId is a 400 ahead of auth
    price_id: Optional[str] = Field(default=None, alias="priceId")


class RedirectResponse(BaseModel):
    """Hosted Stripe page the browser should navigate to"""

    url: str


class EntitlementResponse(BaseModel):
    """Schema for the entitlement read polled after checkout"""

    plan: str
    has_billing_account: bool


class WebhookAck(BaseModel):
    """Body returned to Stripe for every accepted delivery"""

    received: bool = True
