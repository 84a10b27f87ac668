import firebase_admin
from firebase_admin import credentials, auth, exceptions as firebase_exceptions
from tierguard.core.config import settings
from tierguard.core.exceptions import AuthResolutionError
from typing import Optional
import logging

logger = logging.getLogger(__name__)


def init_firebase():
    """Initialize Firebase Admin SDK"""
    logger.info("init_firebase: Entry")

    try:
        if not firebase_admin._apps:
            cred = credentials.Certificate(settings.firebase_credentials_path)
            firebase_admin.initialize_app(cred, {
                'projectId': settings.firebase_project_id,
            })
            logger.info("init_firebase: Success")
        else:
            logger.info("init_firebase: Already initialized")
    except Exception as e:
        logger.error(f"init_firebase: Failure - {e}")
        raise


def verify_firebase_token(token: str) -> Optional[dict]:
    """
    Verify a Firebase ID token.

    Returns the decoded claims, or None when the token is invalid, expired,
    revoked or belongs to a deleted or disabled user. Raises
    AuthResolutionError when Firebase itself cannot be reached or fails, so
    callers can tell "not signed in" apart from "could not find out".
    """
    logger.info("verify_firebase_token: Entry")

    try:
        decoded_token = auth.verify_id_token(token, check_revoked=True)
    except auth.CertificateFetchError as e:
        logger.error(f"verify_firebase_token: Failure - provider unreachable: {e}")
        raise AuthResolutionError(details={'reason': 'certificate_fetch'}) from e
    except (auth.InvalidIdTokenError, auth.UserDisabledError, auth.UserNotFoundError, ValueError) as e:
        # ExpiredIdTokenError and RevokedIdTokenError subclass InvalidIdTokenError
        logger.info(f"verify_firebase_token: Rejected - {type(e).__name__}")
        return None
    except firebase_exceptions.FirebaseError as e:
        logger.error(f"verify_firebase_token: Failure - provider error: {type(e).__name__}: {e}")
        raise AuthResolutionError(details={'reason': 'provider_unavailable'}) from e

    logger.info(f"verify_firebase_token: Success - {decoded_token.get('uid')}")
    return decoded_token
