"""Auth: staff register, login, logout, and role management.

SECURITY FEATURES:
- Password hashing with bcrypt
- Minimum password length
- httpOnly, Secure, SameSite cookies
- Generic login error to prevent user enumeration
"""
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db
from app.core.audit import AuditLog
from app.core.config import settings
from app.core.exceptions import BusinessError
from app.core.permissions import ADMINS, require_role
from app.core.security import create_access_token, get_password_hash, verify_password
from app.models.user import User
from app.schemas.user import RoleUpdate, Token, UserCreate, UserLogin, UserResponse

router = APIRouter()


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@router.post("/register", response_model=UserResponse)
def register(data: UserCreate, request: Request, db: Session = Depends(get_db)):
    """
    Register a staff account. New accounts get the cashier role;
    an admin promotes them through PATCH /auth/users/{id}/role.
    """
    if db.query(User).filter(User.email == data.email).first():
        AuditLog.log_authentication("register", data.email, _client_ip(request), False, "email taken")
        raise BusinessError.conflict("Email already registered")

    if len(data.password) < settings.MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters"
        )

    user = User(
        email=data.email,
        hashed_password=get_password_hash(data.password),
        full_name=data.full_name,
        phone=data.phone,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    AuditLog.log_authentication("register", user.email, _client_ip(request), True)
    return user


@router.post("/login", response_model=Token)
def login(data: UserLogin, request: Request, response: Response, db: Session = Depends(get_db)):
    """
    Login and set the token in an httpOnly cookie.
    The token is also returned in the body for API clients.
    """
    user = db.query(User).filter(User.email == data.email).first()
    if not user or not verify_password(data.password, user.hashed_password):
        AuditLog.log_authentication("failed_login", data.email, _client_ip(request), False, "bad credentials")
        raise HTTPException(status_code=401, detail="Invalid email or password")

    token = create_access_token(subject=str(user.id))

    response.set_cookie(
        key=settings.AUTH_COOKIE_NAME,
        value=token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,  # seconds
        secure=settings.SECURE_COOKIES,
        httponly=True,
        samesite=settings.SAME_SITE_COOKIE,
    )
    AuditLog.log_authentication("login", user.email, _client_ip(request), True)
    return Token(access_token=token)


@router.post("/logout")
def logout(request: Request, response: Response, current_user: User = Depends(get_current_user)):
    """Logout by clearing the httpOnly cookie."""
    response.delete_cookie(
        key=settings.AUTH_COOKIE_NAME,
        secure=settings.SECURE_COOKIES,
        httponly=True,
        samesite=settings.SAME_SITE_COOKIE,
    )
    AuditLog.log_authentication("logout", current_user.email, _client_ip(request), True)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    """Get current authenticated user."""
    return current_user


@router.patch("/users/{user_id}/role", response_model=UserResponse)
def change_role(
    user_id: int,
    data: RoleUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_role(*ADMINS, action="update", resource="user role")),
):
    user = db.get(User, user_id)
    if not user:
        raise BusinessError.not_found("User")
    previous = user.role
    user.role = data.role
    db.commit()
    db.refresh(user)
    AuditLog.log_action("update", "user", user.id, admin.actor_id, changes={"role": [previous, user.role]})
    return user
