"""Billing domain - Stripe checkout, webhook reconciliation and billing portal"""

from .router import router

__all__ = ["router"]
