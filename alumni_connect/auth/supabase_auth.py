import logging

from jose import jwt, JWTError
from fastapi import Header, HTTPException

from alumni_connect.config import settings

logger = logging.getLogger(__name__)


def decode_token(token: str) -> dict:
    """
    Verify a Supabase access token and return its claims.
    Raises JWTError when the token is invalid or has no subject.
    """
    payload = jwt.decode(
        token,
        settings.SUPABASE_JWT_SECRET,
        algorithms=[settings.JWT_ALGORITHM],
        audience=settings.JWT_AUDIENCE,
    )
    if not payload.get("sub"):
        raise JWTError("Token has no subject")
    return payload  # contains sub + email


def get_current_user(authorization: str = Header(None)):
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing auth header")

    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid auth header")

    token = authorization.replace("Bearer ", "", 1)

    try:
        return decode_token(token)
    except JWTError as e:
        logger.warning(f"Rejected token: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")
