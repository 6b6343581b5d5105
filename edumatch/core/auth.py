"""
Authentication Utility - JWT handling.

Provides:
- JWT token creation/verification (tokens are issued by the sign-in service)
- FastAPI dependencies for protected routes
- Cron secret check for queue/cron endpoints
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import text

from edumatch.core.config import get_settings
from edumatch.core.log import get_logger
from edumatch.db.postgres import get_db_session

settings = get_settings()
log = get_logger(__name__)

# Bearer token extractors
bearer_scheme = HTTPBearer()
optional_bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify JWT token."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def load_user(user_id: str) -> Optional[dict]:
    with get_db_session() as db:
        row = db.execute(
            text("SELECT user_id, email, name, role, status FROM users WHERE user_id = :id"),
            {"id": user_id}
        ).fetchone()
    if not row:
        return None
    return {"user_id": row[0], "email": row[1], "name": row[2], "role": row[3], "status": row[4]}


def _user_from_token(token: str) -> dict:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(token)
    if not payload or not payload.get("sub"):
        raise credentials_exception

    user = load_user(str(payload["sub"]))
    if not user:
        raise credentials_exception

    if not user["status"]:
        raise HTTPException(status_code=403, detail="Account deactivated")

    return user


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> dict:
    """
    FastAPI dependency - Get current authenticated user.

    Usage:
        @router.get("/protected")
        async def route(user: dict = Depends(get_current_user)):
            return user
    """
    return _user_from_token(credentials.credentials)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_bearer_scheme)
) -> Optional[dict]:
    """Dependency - current user when a valid token is present, else None (guest)."""
    if credentials is None:
        return None
    payload = decode_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        return None
    return load_user(str(payload["sub"]))


async def get_current_institution(user: dict = Depends(get_current_user)) -> dict:
    """Dependency - Require institution role and attach institution_id."""
    if user["role"] != "institution":
        raise HTTPException(status_code=403, detail="Institutions only")

    with get_db_session() as db:
        row = db.execute(
            text("SELECT institution_id, name FROM institutions WHERE user_id = :id"),
            {"id": user["user_id"]}
        ).fetchone()

    if not row:
        raise HTTPException(status_code=404, detail="Institution not found")

    user["institution_id"] = row[0]
    user["institution_name"] = row[1]
    return user


async def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """
    Dependency - queue/cron endpoints require "Bearer <CRON_SECRET>" in
    production when a secret is configured.
    """
    if not settings.is_production or not settings.cron_secret:
        return
    if authorization != f"Bearer {settings.cron_secret}":
        log.warning("Rejected cron request with bad or missing secret")
        raise HTTPException(status_code=401, detail="Unauthorized")
