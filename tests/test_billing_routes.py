"""Checkout, billing portal and entitlement endpoints"""

import pytest
import stripe

from app.domain.billing.stripe_service import StripeGateway
from app.errors import ConfigurationError, ProviderUnavailable
from conftest import auth_headers

CHECKOUT = "/api/stripe/checkout"
PORTAL = "/api/stripe/portal"
ENTITLEMENT = "/api/billing/entitlement"


def test_checkout_missing_price_is_checked_before_auth(client, stripe_gateway):
    response = client.post(CHECKOUT, json={})
    assert response.status_code == 400
    assert response.json() == {"error": "Missing priceId"}

    response = client.post(CHECKOUT, json={"priceId": "   "}, headers=auth_headers("U1"))
    assert response.status_code == 400
    assert stripe_gateway.checkout_calls == []


def test_checkout_requires_bearer_token(client, stripe_gateway):
    response = client.post(CHECKOUT, json={"priceId": "price_123"})
    assert response.status_code == 401
    assert stripe_gateway.checkout_calls == []


def test_checkout_rejects_invalid_token(client, stripe_gateway):
    response = client.post(
        CHECKOUT, json={"priceId": "price_123"}, headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401


def test_checkout_binds_session_to_user(client, stripe_gateway, make_profile):
    make_profile("U1", email="owner@practice.test")

    response = client.post(CHECKOUT, json={"priceId": "price_123"}, headers=auth_headers("U1"))

    assert response.status_code == 200
    assert response.json() == {"url": "https://checkout.stripe.test/cs_test_1"}
    [call] = stripe_gateway.checkout_calls
    assert call["price_id"] == "price_123"
    assert call["user_id"] == "U1"
    assert call["success_url"] == "https://app.practice.test/upgrade/success"
    assert call["cancel_url"] == "https://app.practice.test/app?stripe=cancel"
    assert call["customer_id"] is None
    assert call["customer_email"] == "owner@practice.test"


def test_checkout_reuses_existing_customer(client, stripe_gateway, make_profile):
    make_profile("U1", stripe_customer_id="cus_123")

    client.post(CHECKOUT, json={"priceId": "price_123"}, headers=auth_headers("U1", "u1@test.io"))

    [call] = stripe_gateway.checkout_calls
    assert call["customer_id"] == "cus_123"


def test_checkout_without_profile_uses_token_email(client, stripe_gateway):
    response = client.post(
        CHECKOUT, json={"priceId": "price_123"}, headers=auth_headers("U9", "u9@test.io")
    )

    assert response.status_code == 200
    [call] = stripe_gateway.checkout_calls
    assert call["customer_email"] == "u9@test.io"


def test_checkout_rejects_already_paid(client, stripe_gateway, make_profile):
    make_profile("U1", plan="paid", stripe_customer_id="cus_123")

    response = client.post(CHECKOUT, json={"priceId": "price_123"}, headers=auth_headers("U1"))

    assert response.status_code == 400
    assert response.json() == {"error": "Already paid"}
    assert stripe_gateway.checkout_calls == []


def test_checkout_provider_failure(client, stripe_gateway, make_profile):
    make_profile("U1")
    stripe_gateway.error = ProviderUnavailable("Checkout failed")

    response = client.post(CHECKOUT, json={"priceId": "price_123"}, headers=auth_headers("U1"))

    assert response.status_code == 500
    assert response.json() == {"error": "Checkout failed"}


def test_checkout_does_not_change_plan(client, db, make_profile):
    profile = make_profile("U1")

    client.post(CHECKOUT, json={"priceId": "price_123"}, headers=auth_headers("U1"))

    db.refresh(profile)
    assert profile.plan == "free"


def test_portal_requires_session(client):
    assert client.post(PORTAL).status_code == 401


def test_portal_unknown_profile(client, stripe_gateway):
    response = client.post(PORTAL, headers=auth_headers("U1"))
    assert response.status_code == 404
    assert response.json() == {"error": "Profile not found"}
    assert stripe_gateway.portal_calls == []


def test_portal_without_customer_makes_no_provider_call(client, stripe_gateway, make_profile):
    make_profile("U1")

    response = client.post(PORTAL, headers=auth_headers("U1"))

    assert response.status_code == 400
    assert response.json() == {"error": "No subscription found"}
    assert stripe_gateway.portal_calls == []


def test_portal_returns_session_url(client, stripe_gateway, make_profile):
    make_profile("U1", plan="paid", stripe_customer_id="cus_123")

    response = client.post(PORTAL, headers=auth_headers("U1"))

    assert response.status_code == 200
    assert response.json() == {"url": "https://billing.stripe.test/bps_test_1"}
    assert stripe_gateway.portal_calls == [
        {"customer_id": "cus_123", "return_url": "https://app.practice.test/settings"}
    ]


def test_entitlement(client, make_profile):
    make_profile("U1")
    make_profile("U2", plan="paid", stripe_customer_id="cus_123")

    assert client.get(ENTITLEMENT, headers=auth_headers("U1")).json() == {
        "plan": "free",
        "has_billing_account": False,
    }
    assert client.get(ENTITLEMENT, headers=auth_headers("U2")).json() == {
        "plan": "paid",
        "has_billing_account": True,
    }
    assert client.get(ENTITLEMENT, headers=auth_headers("U3")).status_code == 404
    assert client.get(ENTITLEMENT).status_code == 401


def test_gateway_requires_api_key():
    gateway = StripeGateway(api_key=None)
    with pytest.raises(ConfigurationError, match="Billing service not configured"):
        gateway.create_portal_session(customer_id="cus_123", return_url="https://x.test")


def test_gateway_sends_user_reference(monkeypatch):
    captured = {}

    def fake_create(**params):
        captured.update(params)
        return {"id": "cs_1", "url": "https://checkout.stripe.test/cs_1"}

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)

    session = StripeGateway(api_key="sk_test_123").create_checkout_session(
        price_id="price_123",
        user_id="U1",
        success_url="https://app.practice.test/upgrade/success",
        cancel_url="https://app.practice.test/app?stripe=cancel",
        customer_email="u1@test.io",
    )

    assert session == {"id": "cs_1", "url": "https://checkout.stripe.test/cs_1"}
    assert captured["mode"] == "subscription"
    assert captured["client_reference_id"] == "U1"
    assert captured["metadata"] == {"supabase_user_id": "U1"}
    assert captured["customer_email"] == "u1@test.io"
    assert "customer" not in captured
    assert captured["line_items"] == [{"price": "price_123", "quantity": 1}]


def test_gateway_wraps_stripe_errors(monkeypatch):
    def failing_create(**params):
        raise stripe.InvalidRequestError("No such price", param="line_items")

    monkeypatch.setattr(stripe.checkout.Session, "create", failing_create)

    with pytest.raises(ProviderUnavailable, match="Checkout failed"):
        StripeGateway(api_key="sk_test_123").create_checkout_session(
            price_id="price_missing",
            user_id="U1",
            success_url="https://a.test",
            cancel_url="https://b.test",
        )
