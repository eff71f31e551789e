from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from .auth_models import User
from .auth_security import get_subject
from .auth_service import dashboard_path, get_profile_id, get_user_by_id, get_user_role
from .models import Role

logger = logging.getLogger(__name__)

# Authorization: Bearer <token>
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


@dataclass(frozen=True)
class CurrentUser:
    user: User
    role: Role | None
    profile_id: int | None


def get_current_user(token: str = Depends(oauth2_scheme)) -> User:
    # stray quotes or spaces pasted with the token
    token = token.strip().strip('"').strip("'")

    user_id = get_subject(token)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    u = get_user_by_id(user_id)
    if not u or not u.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid user")
    return u


def require_role(*roles: Role) -> Callable[..., CurrentUser]:
    """
    Route guard: the caller must hold one of `roles`.
    A wrong role gets 403 with the dashboard it belongs to.
    """

    def _guard(user: User = Depends(get_current_user)) -> CurrentUser:
        role = get_user_role(user.id)
        if role not in roles:
            logger.warning("User %s (%s) denied access", user.id, role.value if role else "no role")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"message": "Not allowed for this role", "redirect": dashboard_path(role)},
            )
        profile_id = get_profile_id(user.id, role)
        if profile_id is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
        return CurrentUser(user=user, role=role, profile_id=profile_id)

    return _guard


def not_found(what: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{what} not found")


def bad_request(e: ValueError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
