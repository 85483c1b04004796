"""Waitlist domain - Pre-launch lead capture"""

from .router import router

__all__ = ["router"]
