"""Waitlist router - insert-only lead capture, duplicates rejected"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...database import get_db
from ...errors import InvalidRequest, PersistenceFailed
from ...models import WaitlistLead
from ...rate_limiter import create_rate_limiter
from ...shared.validators import missing_fields, validate_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/waitlist", tags=["Waitlist"])

rate_limit_waitlist = create_rate_limiter(limit=5, window_seconds=60, key_prefix="waitlist")

DUPLICATE_MESSAGE = "This email is already on the waitlist"


class WaitlistRequest(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None
    practice_type: Optional[str] = None


def _duplicate() -> JSONResponse:
    return JSONResponse(status_code=409, content={"error": DUPLICATE_MESSAGE})


@router.post("")
async def join_waitlist(
    body: WaitlistRequest,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_waitlist),
):
    """Add a lead to the waitlist"""
    if missing_fields({"email": body.email, "name": body.name, "practice_type": body.practice_type}):
        raise InvalidRequest("Email, name, and practice type are required")

    try:
        email = validate_email(body.email)
    except ValueError as e:
        raise InvalidRequest(str(e)) from e

    if db.query(WaitlistLead.id).filter(WaitlistLead.email == email).first():
        return _duplicate()

    lead = WaitlistLead(email=email, name=body.name.strip(), practice_type=body.practice_type)
    db.add(lead)
    try:
        db.commit()
        db.refresh(lead)
    except IntegrityError:
        # Lost a race with an identical submission
        db.rollback()
        return _duplicate()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error inserting waitlist lead: {e}")
        raise PersistenceFailed("Failed to join waitlist. Please try again.") from e

    logger.info(f"✅ Waitlist lead added: {lead.id}")
    return JSONResponse(
        status_code=201,
        content={
            "message": "Successfully joined waitlist",
            "data": {
                "id": lead.id,
                "email": lead.email,
                "name": lead.name,
                "practice_type": lead.practice_type,
            },
        },
    )
