# app/api/deps.py
import logging
from fastapi import Depends, HTTPException, status
from starlette.requests import HTTPConnection
from fastapi.security import OAuth2PasswordBearer # Only used for the "Bearer" scheme

from app.core import security
from app.db.session import SessionLocal
from app.core.config import settings

logger = logging.getLogger("app.api.deps")  # Logger for this module

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# Tokens are issued by the external auth service; the URL is nominal
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/token")

async def get_current_user_id(token: str = Depends(oauth2_scheme)) -> str:
    """The player id is the 'sub' claim of the backend JWT."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    payload = await security.verify_backend_token(token)
    user_id: str | None = payload.get("sub")
    if not user_id:
        logger.error("Backend token validation failed: 'sub' field missing.")
        raise credentials_exception
    return str(user_id)

def get_client_ip(connection: HTTPConnection) -> str | None:
    # Behind a proxy the first forwarded hop is the real client
    forwarded = connection.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return connection.client.host if connection.client else None
