"""
Firebase identity verification for the Tender Desk service.

Browser clients sign in with Firebase and send either an ID token
(``Authorization: Bearer <token>``) or the ``session`` cookie minted by
``POST /session/login``. Both are Google-signed JWTs; they are verified with
google-auth against the public certificates Google publishes for each token
type, then checked for the project's audience and issuer.

Session cookies are minted through the Identity Toolkit REST endpoint using
the service account from GOOGLE_APPLICATION_CREDENTIALS.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

import google.auth.transport.requests
import requests
from google.auth import exceptions as google_auth_exceptions
from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import id_token, service_account


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

SESSION_COOKIE_NAME: str = "session"

# Public keys used to sign Firebase session cookies (ID tokens use the
# securetoken keys that verify_firebase_token fetches by default)
SESSION_COOKIE_CERTS_URL: str = (
    "https://www.googleapis.com/identitytoolkit/v3/relyingparty/publicKeys"
)

CREATE_SESSION_COOKIE_URL: str = (
    "https://identitytoolkit.googleapis.com/v1/projects/{project_id}:createSessionCookie"
)

CLOUD_PLATFORM_SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]

ID_TOKEN_ISSUER: str = "https://securetoken.google.com/{project_id}"
SESSION_COOKIE_ISSUER: str = "https://session.firebase.google.com/{project_id}"


class AuthError(Exception):
    """Raised when a token or cookie cannot be verified or minted."""


@dataclass
class AuthenticatedUser:
    """Identity extracted from a verified Firebase token."""
    uid: str
    email: Optional[str] = None


# Reused across verifications; google-auth caches fetched certificates per request session
_http_request: Optional[google.auth.transport.requests.Request] = None


def _get_http_request() -> google.auth.transport.requests.Request:
    global _http_request
    if _http_request is None:
        _http_request = google.auth.transport.requests.Request()
    return _http_request


def _user_from_claims(claims: Optional[Dict[str, Any]], issuer: str) -> AuthenticatedUser:
    if not claims:
        raise AuthError("Invalid or expired token")
    if claims.get("iss") != issuer:
        raise AuthError("Invalid or expired token")

    uid = claims.get("user_id") or claims.get("sub")
    if not uid:
        raise AuthError("Invalid or expired token")

    return AuthenticatedUser(uid=str(uid), email=claims.get("email"))


# =============================================================================
# Verification
# =============================================================================

def verify_id_token(token: str, project_id: str) -> AuthenticatedUser:
    """
    Verify a Firebase ID token.

    Args:
        token: Raw JWT from the Authorization header.
        project_id: Firebase project ID (token audience).

    Returns:
        AuthenticatedUser with the Firebase uid and email.

    Raises:
        AuthError: If the signature, audience, issuer or expiry is invalid.
    """
    try:
        claims = id_token.verify_firebase_token(token, _get_http_request(), audience=project_id)
    except (ValueError, google_auth_exceptions.GoogleAuthError) as e:
        logger.warning(f"ID token rejected: {e}")
        raise AuthError("Invalid or expired token") from e

    return _user_from_claims(claims, ID_TOKEN_ISSUER.format(project_id=project_id))


def verify_session_cookie(cookie: str, project_id: str) -> AuthenticatedUser:
    """
    Verify a Firebase session cookie minted by create_session_cookie().

    Raises:
        AuthError: If the cookie is invalid or expired.
    """
    try:
        claims = id_token.verify_token(
            cookie,
            _get_http_request(),
            audience=project_id,
            certs_url=SESSION_COOKIE_CERTS_URL,
        )
    except (ValueError, google_auth_exceptions.GoogleAuthError) as e:
        logger.warning(f"Session cookie rejected: {e}")
        raise AuthError("Invalid or expired session") from e

    return _user_from_claims(claims, SESSION_COOKIE_ISSUER.format(project_id=project_id))


# =============================================================================
# Session cookie minting
# =============================================================================

def create_session_cookie(
    token: str,
    expires_in: timedelta,
    project_id: str,
    credentials_path: str,
) -> str:
    """
    Exchange a verified ID token for a Firebase session cookie.

    Args:
        token: Firebase ID token (already verified by the caller).
        expires_in: Cookie lifetime (Firebase accepts 5 minutes to 2 weeks).
        project_id: Firebase project ID.
        credentials_path: Service account JSON path.

    Returns:
        str: The session cookie value.

    Raises:
        AuthError: If the service account cannot be loaded, Identity Toolkit
            cannot be reached, or it rejects the request.
    """
    try:
        credentials = service_account.Credentials.from_service_account_file(
            credentials_path,
            scopes=CLOUD_PLATFORM_SCOPES,
        )
        session = AuthorizedSession(credentials)

        response = session.post(
            CREATE_SESSION_COOKIE_URL.format(project_id=project_id),
            json={
                "idToken": token,
                "validDuration": str(int(expires_in.total_seconds())),
            },
        )
    except (OSError, ValueError, google_auth_exceptions.GoogleAuthError, requests.RequestException) as e:
        logger.error(f"createSessionCookie unavailable: {e}", exc_info=True)
        raise AuthError("Session login failed") from e

    if response.status_code != 200:
        logger.error(f"createSessionCookie failed: status={response.status_code} body={response.text[:300]}")
        raise AuthError(f"Session login failed ({response.status_code})")

    try:
        cookie = response.json().get("sessionCookie")
    except (ValueError, AttributeError):
        cookie = None
    if not cookie:
        raise AuthError("Session login failed (no cookie returned)")

    return cookie
