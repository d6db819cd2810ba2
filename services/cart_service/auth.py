"""Owner identity from the caller's bearer token. The body never names the owner."""

import logging
from typing import Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from services.cart_service.config import Settings, get_settings
from services.cart_service.errors import AuthRequiredError

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def decode_user_id(token: str, secret: str, algorithm: str = "HS256") -> str:
    """User id carried by a token issued by the auth service (``id`` claim, ``sub`` as fallback)."""
    try:
        claims = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.PyJWTError as e:
        logger.warning(f"Rejected bearer token: {e}")
        raise AuthRequiredError("Authentication required") from e

    user_id = claims.get("id") or claims.get("sub")
    if not user_id:
        raise AuthRequiredError("Authentication required")
    return str(user_id)


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> str:
    """FastAPI dependency returning the authenticated user's id, 401 otherwise."""
    try:
        if credentials is None:
            raise AuthRequiredError("Authentication required")
        return decode_user_id(credentials.credentials, settings.jwt_secret, settings.jwt_algorithm)
    except AuthRequiredError as e:
        raise HTTPException(
            status_code=e.status_code,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
