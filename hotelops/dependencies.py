"""FastAPI dependencies resolving the caller and gating by role.

Every service receives the caller through ``Depends(get_current_active_user)``
rather than any shared state, so handlers stay stateless per request.
"""
from typing import Callable, Iterable

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from .auth import decode_token
from .database import get_db
from .models import STAFF_ROLES, RoleEnum, User

oauth_scheme = OAuth2PasswordBearer(tokenUrl="/users/login")


def get_current_user(token: str = Depends(oauth_scheme), db: Session = Depends(get_db)) -> User:
    claims = decode_token(token)
    username = claims.get("sub")
    if not username:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing subject in token")
    user = db.query(User).filter(User.username == username).first()
    # A recreated account with the same username must not inherit old tokens.
    if user is None or ("uid" in claims and claims["uid"] != user.id):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account is deactivated")
    return current_user


def allow_roles(*roles: RoleEnum) -> Callable[[User], User]:
    """Build a dependency admitting only the given roles."""

    def dependency(current_user: User = Depends(get_current_active_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_user

    return dependency


require_staff = allow_roles(*STAFF_ROLES)


def is_staff(user: User) -> bool:
    return user.role in STAFF_ROLES


def ensure_owner_or_roles(current_user: User, owner_id: int, roles: Iterable[RoleEnum] = STAFF_ROLES) -> None:
    """Guests only see their own records; the listed roles see everyone's."""
    if current_user.role not in tuple(roles) and owner_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
