"""
FastAPI dependency injection module for the Tender Desk service.

This module provides reusable FastAPI dependencies for database sessions,
configuration access, the workflow HTTP client, object storage and
authentication. Endpoints declare what they need through the ``*Dep`` type
aliases; tests replace any of them through ``app.dependency_overrides``.

Key Dependencies Provided:
- SettingsDep: The cached Settings singleton
- DBSessionDep: An asyncpg connection acquired from the pool
- HttpClientDep: An httpx.AsyncClient for workflow webhook calls
- ObjectStoreDep: The Cloud Storage bucket wrapper
- BearerUserDep: Identity from ``Authorization: Bearer <Firebase ID token>``
- CurrentUserDep: Identity from a bearer token or the ``session`` cookie

Usage Examples:
    @router.get("/predictions")
    async def list_predictions(
        db: DBSessionDep,
        user: BearerUserDep,
    ) -> dict:
        ...

Authentication dependencies are plain ``def`` functions: google-auth verifies
tokens synchronously (it may fetch Google's public certificates), so FastAPI
runs them in its threadpool.
"""

from typing import Annotated, AsyncGenerator, Optional

import httpx
from asyncpg import Connection
from fastapi import Cookie, Depends, Header, HTTPException

from tenderdesk.core.auth import (
    SESSION_COOKIE_NAME,
    AuthError,
    AuthenticatedUser,
    verify_id_token,
    verify_session_cookie,
)
from tenderdesk.core.config import ConfigurationError, Settings, get_settings
from tenderdesk.core.database import get_db_pool
from tenderdesk.core.storage import ObjectStore, get_storage_client


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    Thin wrapper around get_settings() so tests can do:
    app.dependency_overrides[get_settings_dependency] = lambda: test_settings
    """
    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]


# =============================================================================
# Database Session Dependency
# =============================================================================

async def get_db_session() -> AsyncGenerator[Connection, None]:
    """
    Yield an async database connection from the pool.

    The connection is released back to the pool when the endpoint completes,
    regardless of whether the operation succeeded or raised an exception.

    Yields:
        asyncpg.Connection: An active database connection from the pool.
    """
    pool = await get_db_pool()
    async with pool.acquire() as connection:
        yield connection


DBSessionDep = Annotated[Connection, Depends(get_db_session)]


# =============================================================================
# Workflow HTTP Client Dependency
# =============================================================================

async def get_http_client(settings: SettingsDep) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    Yield an httpx.AsyncClient for the duration of one request.

    The timeout comes from WEBHOOK_TIMEOUT_SECONDS; when unset the client waits
    for the workflow indefinitely.
    """
    async with httpx.AsyncClient(timeout=settings.webhook_timeout_seconds) as client:
        yield client


HttpClientDep = Annotated[httpx.AsyncClient, Depends(get_http_client)]


# =============================================================================
# Object Storage Dependency
# =============================================================================

def get_object_store(settings: SettingsDep) -> ObjectStore:
    """Build the bucket wrapper; 500 when GCS_BUCKET is not configured."""
    try:
        bucket_name = settings.require("gcs_bucket")
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return ObjectStore(get_storage_client(settings), bucket_name)


ObjectStoreDep = Annotated[ObjectStore, Depends(get_object_store)]


# =============================================================================
# Authentication Dependencies
# =============================================================================

def _project_id(settings: Settings) -> str:
    try:
        return settings.require("firebase_project_id")
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e))


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None

    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def require_bearer_user(
    settings: SettingsDep,
    authorization: Annotated[Optional[str], Header()] = None,
) -> AuthenticatedUser:
    """
    Resolve the caller from ``Authorization: Bearer <Firebase ID token>``.

    Raises:
        HTTPException 401: "Missing Authorization Bearer token" or
            "Invalid or expired token".
        HTTPException 500: FIREBASE_PROJECT_ID is not configured.
    """
    token = _bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Missing Authorization Bearer token")

    try:
        return verify_id_token(token, _project_id(settings))
    except AuthError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def get_current_user(
    settings: SettingsDep,
    authorization: Annotated[Optional[str], Header()] = None,
    session: Annotated[Optional[str], Cookie(alias=SESSION_COOKIE_NAME)] = None,
) -> AuthenticatedUser:
    """
    Resolve the caller from a bearer ID token, falling back to the session cookie.

    Raises:
        HTTPException 401: Neither credential is present or valid.
    """
    project_id = _project_id(settings)

    token = _bearer_token(authorization)
    if token:
        try:
            return verify_id_token(token, project_id)
        except AuthError:
            # a stale bearer token still allows the cookie to authenticate
            pass

    if session:
        try:
            return verify_session_cookie(session, project_id)
        except AuthError:
            raise HTTPException(status_code=401, detail="Unauthorized")

    raise HTTPException(status_code=401, detail="Unauthorized")


BearerUserDep = Annotated[AuthenticatedUser, Depends(require_bearer_user)]
CurrentUserDep = Annotated[AuthenticatedUser, Depends(get_current_user)]
