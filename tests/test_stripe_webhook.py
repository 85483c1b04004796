"""Stripe webhook verification and entitlement reconciliation"""

import hashlib
import hmac
import json
import time

from sqlalchemy.exc import OperationalError

from app.domain.billing.repository import EntitlementStore
from app.models import Profile
from conftest import WEBHOOK_SECRET

WEBHOOK = "/api/stripe/webhook"


def _sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def _event(event_type="checkout.session.completed", **session):
    return json.dumps(
        {
            "id": "evt_1",
            "object": "event",
            "type": event_type,
            "data": {"object": {"id": "cs_test_1", "object": "checkout.session", **session}},
        }
    ).encode()


def _post(client, payload: bytes, signature: str = None):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["stripe-signature"] = signature
    return client.post(WEBHOOK, content=payload, headers=headers)


def _profile(db, user_id):
    db.expire_all()
    return db.query(Profile).filter(Profile.id == user_id).first()


def test_checkout_completed_marks_user_paid(client, db, make_profile):
    make_profile("U2")
    payload = _event(client_reference_id="U2", customer="cus_123")

    response = _post(client, payload, _sign(payload))

    assert response.status_code == 200
    assert response.json() == {"received": True}
    profile = _profile(db, "U2")
    assert profile.plan == "paid"
    assert profile.stripe_customer_id == "cus_123"


def test_redelivery_is_idempotent(client, db, make_profile):
    make_profile("U2")
    payload = _event(client_reference_id="U2", customer="cus_123")

    first = _post(client, payload, _sign(payload))
    second = _post(client, payload, _sign(payload))

    assert first.status_code == second.status_code == 200
    profile = _profile(db, "U2")
    assert profile.plan == "paid"
    assert profile.stripe_customer_id == "cus_123"


def test_metadata_user_reference_is_used(client, db, make_profile):
    make_profile("U3")
    payload = _event(metadata={"supabase_user_id": "U3"}, customer={"id": "cus_obj"})

    assert _post(client, payload, _sign(payload)).status_code == 200
    profile = _profile(db, "U3")
    assert profile.plan == "paid"
    assert profile.stripe_customer_id == "cus_obj"


def test_existing_customer_id_is_kept(client, db, make_profile):
    make_profile("U2", stripe_customer_id="cus_original")
    payload = _event(client_reference_id="U2", customer="cus_other")

    assert _post(client, payload, _sign(payload)).status_code == 200
    profile = _profile(db, "U2")
    assert profile.plan == "paid"
    assert profile.stripe_customer_id == "cus_original"


def test_tampered_payload_is_rejected(client, db, make_profile):
    make_profile("U2")
    payload = _event(client_reference_id="U2", customer="cus_123")
    signature = _sign(payload)
    tampered = payload.replace(b"cus_123", b"cus_999")

    response = _post(client, tampered, signature)

    assert response.status_code == 400
    assert "error" in response.json()
    assert _profile(db, "U2").plan == "free"


def test_wrong_secret_is_rejected(client, db, make_profile):
    make_profile("U2")
    payload = _event(client_reference_id="U2")

    response = _post(client, payload, _sign(payload, secret="whsec_wrong"))

    assert response.status_code == 400
    assert _profile(db, "U2").plan == "free"


def test_stale_timestamp_is_rejected(client, db, make_profile):
    make_profile("U2")
    payload = _event(client_reference_id="U2")

    response = _post(client, payload, _sign(payload, timestamp=int(time.time()) - 3600))

    assert response.status_code == 400
    assert _profile(db, "U2").plan == "free"


def test_missing_signature_is_rejected(client, db, make_profile):
    make_profile("U2")
    payload = _event(client_reference_id="U2")

    response = _post(client, payload)

    assert response.status_code == 400
    assert response.json() == {"error": "Missing stripe-signature"}
    assert _profile(db, "U2").plan == "free"


def test_other_event_types_are_acknowledged(client, db, make_profile):
    make_profile("U2")
    payload = _event("invoice.paid", client_reference_id="U2")

    response = _post(client, payload, _sign(payload))

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert _profile(db, "U2").plan == "free"


def test_event_without_user_reference_is_acknowledged(client, db, make_profile):
    make_profile("U2")
    payload = _event(customer="cus_123")

    assert _post(client, payload, _sign(payload)).status_code == 200
    assert _profile(db, "U2").plan == "free"


def test_unknown_user_is_acknowledged(client, db):
    payload = _event(client_reference_id="nobody")

    assert _post(client, payload, _sign(payload)).status_code == 200
    assert _profile(db, "nobody") is None


def test_store_failure_returns_500_for_redelivery(client, db, make_profile, monkeypatch):
    make_profile("U2")

    def broken_mark_paid(db, user_id, stripe_customer_id=None):
        raise OperationalError("UPDATE", {}, Exception("connection reset"))

    monkeypatch.setattr(EntitlementStore, "mark_paid", staticmethod(broken_mark_paid))
    payload = _event(client_reference_id="U2")

    response = _post(client, payload, _sign(payload))

    assert response.status_code == 500
    assert response.json() == {"error": "DB update failed"}


def test_webhook_flood_is_rate_limited_before_verification(client, db, make_profile, monkeypatch):
    from app import rate_limiter

    monkeypatch.setattr(rate_limiter, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(rate_limiter, "memory_cache", {})
    make_profile("U2")
    payload = _event(client_reference_id="U2")

    statuses = [_post(client, payload, "t=1,v1=bad").status_code for _ in range(100)]
    assert set(statuses) == {400}

    response = _post(client, payload, _sign(payload))
    assert response.status_code == 429
    assert "Retry-After" in response.headers
    assert response.json()["error"].startswith("Rate limit exceeded")
    assert _profile(db, "U2").plan == "free"
