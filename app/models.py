import enum

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from .database import Base


class CalendarProvider(str, enum.Enum):
    GOOGLE = "google"


class Plan(str, enum.Enum):
    FREE = "free"
    PAID = "paid"


class Profile(Base):
    """Entitlement slice of the user profile. Rows are created at signup."""

    __tablename__ = "profiles"

    # Identity-provider user id (Supabase auth.users.id)
    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=True)
    plan = Column(String(20), default=Plan.FREE.value, nullable=False)
    # Set on first completed checkout, never cleared
    stripe_customer_id = Column(String(255), nullable=True, index=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class CalendarConnection(Base):
    __tablename__ = "calendar_connections"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, unique=True, index=True)
    provider = Column(String(20), default=CalendarProvider.GOOGLE.value, nullable=False)

    # OAuth tokens (encrypted)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime, nullable=True)

    # Which provider calendar is authoritative for this user
    calendar_id = Column(String(500), nullable=True)
    calendar_email = Column(String(500), nullable=True)

    sync_enabled = Column(Boolean, default=True, nullable=False)
    connected_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class WaitlistLead(Base):
    __tablename__ = "waitlist_leads"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)  # lowercased + trimmed
    name = Column(String(255), nullable=False)
    practice_type = Column(String(100), nullable=False)
    created_at = Column(DateTime, server_default=func.now())
