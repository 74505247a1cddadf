"""
Sign-in check for administrative endpoints.

Staff sign in with their Google account in the front end, which then
sends the Google ID token as ``Authorization: Bearer <token>``.  The
``require_staff_session`` dependency verifies the token signature and
audience with ``google-auth`` and checks that the verified e-mail belongs
to ``ALLOWED_EMAIL_DOMAIN``.

When ``ALLOWED_EMAIL_DOMAIN`` is empty the check is disabled, which is
how the API runs on a developer machine.
"""

import logging
from typing import Any, Callable, Dict

import google.auth.exceptions
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

TokenVerifier = Callable[[str, str], Dict[str, Any]]


def verify_google_id_token(token: str, audience: str) -> Dict[str, Any]:
    """Verify a Google ID token and return its claims.

    Raises ``ValueError`` for an invalid, expired or foreign token.
    """
    return id_token.verify_oauth2_token(token, google_requests.Request(), audience or None)


def get_token_verifier() -> TokenVerifier:
    return verify_google_id_token


def email_in_domain(email: str, domain: str) -> bool:
    domain = domain.strip().lstrip("@").lower()
    return bool(email) and email.lower().endswith("@" + domain)


def require_staff_session(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> Dict[str, Any]:
    """Dependency guarding administrative routes.

    Returns the verified token claims, or an empty dict when the domain
    restriction is disabled.  Raises 401 for a missing or invalid token
    and 403 for an account outside the allowed domain.
    """
    settings = request.app.state.settings
    domain = settings.allowed_email_domain.strip()
    if not domain:
        return {}
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        claims = verifier(credentials.credentials, settings.google_client_id)
    except google.auth.exceptions.TransportError as exc:
        logger.error("Could not fetch Google signing certificates: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sign-in could not be verified right now",
        ) from exc
    except (ValueError, google.auth.exceptions.GoogleAuthError) as exc:
        logger.info("Rejected sign-in token: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc

    email = claims.get("email", "")
    if not claims.get("email_verified", False) or not email_in_domain(email, domain):
        logger.warning("Sign-in from %s refused: outside %s", email or "unknown account", domain)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Access is restricted to @{domain.lstrip('@')} accounts",
        )
    return claims
