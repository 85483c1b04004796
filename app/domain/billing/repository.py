"""Billing repository - Entitlement reads and the webhook-driven plan transition"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Plan, Profile


class EntitlementStore:
    """Repository for the entitlement slice of user profiles"""

    @staticmethod
    def get_profile(db: Session, user_id: str) -> Optional[Profile]:
        """Get profile by user ID"""
        return db.query(Profile).filter(Profile.id == user_id).first()

    @staticmethod
    def mark_paid(db: Session, user_id: str, stripe_customer_id: Optional[str] = None) -> int:
        """
        Targeted update: plan -> paid, and record the customer id only if none is stored.

        Same-value sets make repeated application a no-op. Returns the number of
        profiles matched.
        """
        values = {"plan": Plan.PAID.value, "updated_at": datetime.utcnow()}
        if stripe_customer_id:
            values["stripe_customer_id"] = func.coalesce(Profile.stripe_customer_id, stripe_customer_id)

        try:
            matched = (
                db.query(Profile)
                .filter(Profile.id == user_id)
                .update(values, synchronize_session=False)
            )
            db.commit()
            return matched
        except Exception:
            db.rollback()
            raise
