"""
FastAPI router for browser sessions.

Key Endpoints:
- POST /session/login - Exchange a Firebase ID token for a ``session`` cookie
- POST /session/logout - Clear the ``session`` cookie

The cookie is httpOnly, SameSite=Lax, path "/", secure in production, and
lives SESSION_COOKIE_DAYS days (5 by default).
"""

import logging
from datetime import timedelta
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Response

from tenderdesk.core.auth import SESSION_COOKIE_NAME, AuthError, create_session_cookie, verify_id_token
from tenderdesk.core.config import ConfigurationError
from tenderdesk.core.dependencies import SettingsDep
from tenderdesk.models.schemas import SessionLoginRequest


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login")
def login(payload: SessionLoginRequest, response: Response, settings: SettingsDep) -> Dict[str, Any]:
    """
    Verify the ID token and set the session cookie.

    Raises:
        HTTPException 400: idToken missing.
        HTTPException 401: Token rejected or cookie could not be minted.
        HTTPException 500: Firebase / service account settings missing.
    """
    if not payload.idToken:
        raise HTTPException(status_code=400, detail="Missing idToken")

    expires_in = timedelta(days=settings.session_cookie_days)

    try:
        project_id = settings.require("firebase_project_id")
        credentials_path = settings.require("google_application_credentials")
        user = verify_id_token(payload.idToken, project_id)
        cookie = create_session_cookie(payload.idToken, expires_in, project_id, credentials_path)
    except ConfigurationError as e:
        logger.error(f"Session login unavailable: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))

    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=cookie,
        max_age=int(expires_in.total_seconds()),
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )
    logger.info(f"Session opened for {user.uid}")
    return {"ok": True}


@router.post("/logout")
def logout(response: Response, settings: SettingsDep) -> Dict[str, Any]:
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )
    return {"ok": True}
