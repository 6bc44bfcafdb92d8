"""Firebase Admin wrapper: verifies ID tokens minted by the SPA's Firebase Auth."""

from __future__ import annotations

import logging
from typing import Any, Dict

import firebase_admin
from firebase_admin import auth as firebase_auth
from firebase_admin import exceptions as firebase_exceptions
from google.auth.exceptions import GoogleAuthError

from pipapal.config import settings
from pipapal.errors import ExternalServiceError
from pipapal.services.security import TokenError

logger = logging.getLogger(__name__)


def _get_app() -> firebase_admin.App:
    try:
        return firebase_admin.get_app()
    except ValueError:
        options = {"projectId": settings.firebase_project_id} if settings.firebase_project_id else None
        app = firebase_admin.initialize_app(options=options)
        logger.info("Firebase Admin SDK initialized")
        return app


# PUBLIC_INTERFACE
def verify_id_token(id_token: str) -> Dict[str, Any]:
    """
    Verify a Firebase ID token and return its decoded claims.

    Raises:
        TokenError: the token is malformed, revoked or expired.
        ExternalServiceError: Firebase could not be reached or is misconfigured.
    """
    try:
        return firebase_auth.verify_id_token(id_token, app=_get_app())
    except (firebase_auth.InvalidIdTokenError, firebase_auth.ExpiredIdTokenError, ValueError) as exc:
        logger.info("Rejected Firebase ID token: %s", exc)
        raise TokenError("Invalid Firebase ID token")
    except (firebase_exceptions.FirebaseError, GoogleAuthError) as exc:
        logger.error("Error verifying Firebase ID token: %s", exc)
        raise ExternalServiceError("Identity provider unavailable")
