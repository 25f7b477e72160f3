# app/core/security.py
import logging
from datetime import datetime, timedelta, timezone
from jose import jwt, JWTError
from fastapi import HTTPException, status

from app.core.config import settings

logger = logging.getLogger("app.core.security")  # Logger for this module


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """
    Issues a backend JWT the way the auth service does. Player identity travels
    in the 'sub' claim; this backend never authenticates players itself.
    """
    now = datetime.now(timezone.utc)
    to_encode = data.copy()
    to_encode.update({
        "iat": now,
        "exp": now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)),
        "iss": settings.JWT_ISSUER,
    })
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_player_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    return create_access_token({"sub": str(user_id)}, expires_delta)


async def verify_backend_token(token: str) -> dict:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate backend token",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        # Rejects expired tokens and tokens from another issuer
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            issuer=settings.JWT_ISSUER,
        )
    except JWTError as e:
        logger.warning(f"JWTError during backend token verification: {e}")
        raise credentials_exception
    except Exception as e:
        logger.exception(f"Unexpected error verifying backend token: {e}")
        raise credentials_exception
