"""
Google Calendar Integration Routes
Handles OAuth connection, callback and disconnection
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ...auth import AuthenticatedUser, get_current_user
from ...config import SITE_URL
from ...database import get_db
from .google_client import GoogleCalendarOAuthClient, get_google_client
from .schemas import CalendarStatusResponse
from .service import CalendarConnectionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/calendar", tags=["google-calendar"])


def get_calendar_service(
    db: Session = Depends(get_db),
    google: GoogleCalendarOAuthClient = Depends(get_google_client),
) -> CalendarConnectionService:
    """Dependency injection for CalendarConnectionService"""
    return CalendarConnectionService(db, google)


@router.get("/oauth/authorize")
async def authorize_google_calendar(
    user: AuthenticatedUser = Depends(get_current_user),
    service: CalendarConnectionService = Depends(get_calendar_service),
):
    """Redirect the signed-in user to Google's consent screen"""
    return RedirectResponse(url=service.build_authorization_url(user.id), status_code=307)


@router.get("/oauth/callback")
async def google_calendar_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    service: CalendarConnectionService = Depends(get_calendar_service),
):
    """Google redirects here after consent; always answers with a redirect to the status page"""
    outcome = await service.handle_callback(code, state, error)
    return RedirectResponse(url=f"{SITE_URL}/calendar?{outcome.value}", status_code=307)


@router.post("/disconnect")
async def disconnect_google_calendar(
    user: AuthenticatedUser = Depends(get_current_user),
    service: CalendarConnectionService = Depends(get_calendar_service),
):
    """Disconnect Google Calendar integration"""
    await service.disconnect(user.id)
    return {"success": True}


@router.get("/status", response_model=CalendarStatusResponse)
async def get_google_calendar_status(
    user: AuthenticatedUser = Depends(get_current_user),
    service: CalendarConnectionService = Depends(get_calendar_service),
):
    """Get Google Calendar connection status"""
    return await service.get_status(user.id)
