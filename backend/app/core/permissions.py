"""
Role checks for staff APIs.

These replace per-table row-level policies: the API layer decides who may call
a service, and the services assume the caller is already authorized.
- any authenticated staff member: read, sell, record prescriptions, edit catalogue
- admin, pharmacist: stock adjustments and write-offs
- admin: deletions and role changes
"""
from typing import Callable

from fastapi import Depends

from app.api.deps import get_current_user
from app.core.audit import AuditLog
from app.core.exceptions import BusinessError
from app.models.user import User

STOCK_MANAGERS = ("admin", "pharmacist")
ADMINS = ("admin",)


def user_has_role(user: User, *roles: str) -> bool:
    return user.role in roles


def require_role(*roles: str, action: str = "write", resource: str = "resource") -> Callable[..., User]:
    """Dependency factory: the current user, or 403 if their role is not listed."""

    def checker(current_user: User = Depends(get_current_user)) -> User:
        if not user_has_role(current_user, *roles):
            AuditLog.log_access_denied(action, resource, current_user.id, f"role {current_user.role}")
            raise BusinessError.forbidden(f"user {current_user.id} ({current_user.role}) -> {action} {resource}")
        return current_user

    return checker
