"""FastAPI dependencies: DB session and current staff user from JWT.

SECURITY: Supports JWT from:
1. Authorization header (for API clients)
2. httpOnly cookie (for the web front end)
"""
from typing import Generator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import BusinessError
from app.core.security import decode_access_token
from app.db.session import SessionLocal
from app.models.user import User

security = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> int:
    """Extract the user id from the bearer token, falling back to the auth cookie."""
    token = None
    if credentials:
        token = credentials.credentials
    elif settings.AUTH_COOKIE_NAME in request.cookies:
        token = request.cookies[settings.AUTH_COOKIE_NAME]

    if not token:
        raise BusinessError.unauthorized("missing token")

    sub = decode_access_token(token)
    if not sub:
        raise BusinessError.unauthorized("invalid or expired token")

    try:
        return int(sub)
    except ValueError:
        raise BusinessError.unauthorized(f"malformed subject {sub!r}")


def get_current_user(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
) -> User:
    """Load current user from DB."""
    user = db.get(User, user_id)
    if not user:
        raise BusinessError.unauthorized(f"user {user_id} no longer exists")
    return user
