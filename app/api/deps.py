# app/api/deps.py
import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from app.core.config import settings
from app.db.gateway import NotificationGateway
from app.schemas.token import FirebaseTokenData

# Firebase Admin SDK (initialized in main.py)
from firebase_admin import auth as firebase_auth
from firebase_admin._auth_utils import InvalidIdTokenError

logger = logging.getLogger(__name__)

UNAUTH_TEXT = "Could not validate credentials"

InvalidTokenError = InvalidIdTokenError

# --- Persistence Dependency ---
async def get_notification_gateway(request: Request) -> NotificationGateway:
    """
    FastAPI dependency returning the gateway created during lifespan startup.
    """
    gateway: Optional[NotificationGateway] = getattr(request.app.state, "notification_gateway", None)
    if gateway is None:
        # This should ideally not happen if lifespan startup succeeded
        logger.error("Notification gateway is not available for this request.")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database service is not available.",
        )
    return gateway

# --- Authentication Dependencies ---

def _unauthorized(detail: str = UNAUTH_TEXT) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_verified_token_data(request: Request) -> FirebaseTokenData:
    auth_header: Optional[str] = request.headers.get("Authorization")

    # Header must exist
    if not auth_header:
        raise _unauthorized()

    try:
        scheme, token = auth_header.split(" ", 1)
    except ValueError:
        raise _unauthorized()

    if scheme.lower() != "bearer" or not token:
        raise _unauthorized()

    # Test runs use the raw uid as a stub bearer token
    if settings.ENVIRONMENT == "test" and "." not in token:
        return FirebaseTokenData(uid=token, email=None)

    try:
        return await firebase_verify_token(token)
    except InvalidTokenError:
        raise _unauthorized("Invalid Firebase token")


async def get_current_user_id(
    token_data: FirebaseTokenData = Depends(get_verified_token_data),
) -> str:
    """
    The owner id every inbox operation is scoped to: the verified Firebase uid.
    """
    return token_data.uid

# ------------------------------------------------------------------
# Helper: verify a Firebase ID-token and return our Pydantic model
# ------------------------------------------------------------------
async def firebase_verify_token(token: str) -> FirebaseTokenData:
    """
    Verifies a Firebase ID token and converts the decoded claims into our
    FirebaseTokenData schema.  Raises InvalidTokenError on any failure so the
    caller can respond with 401.
    """
    try:
        claims = firebase_auth.verify_id_token(token)
    except Exception as exc:          # all errors → InvalidTokenError
        raise InvalidTokenError(str(exc)) from exc

    return FirebaseTokenData(
        uid=claims.get("uid") or claims.get("user_id"),
        email=claims.get("email"),
    )
