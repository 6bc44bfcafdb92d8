"""FastAPI dependencies: current user, role checks, vendor clients, relay dispatch."""

from __future__ import annotations

from typing import Iterable, Optional

from fastapi import BackgroundTasks, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from pipapal.db.models import User
from pipapal.db.session import get_db
from pipapal.realtime.hub import hub
from pipapal.services.collections import Notice
from pipapal.services.mpesa import MpesaClient
from pipapal.services.permissions import Permission, has_permission
from pipapal.services.security import TokenError, token_user_id

bearer = HTTPBearer(auto_error=False)


# PUBLIC_INTERFACE
def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer token to a user or answer 401."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        user_id = token_user_id(credentials.credentials)
    except TokenError as exc:
        raise HTTPException(status_code=401, detail=str(exc))
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


# PUBLIC_INTERFACE
def require_permission(permission: Permission):
    """Dependency factory: 403 unless the user's role grants `permission`."""

    def checker(user: User = Depends(get_current_user)) -> User:
        if not has_permission(user.role, permission):
            raise HTTPException(
                status_code=403,
                detail=f"You don't have the required permission: {permission.name}",
            )
        return user

    return checker


# PUBLIC_INTERFACE
def require_role(*roles: str):
    def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail=f"This action requires the role: {' or '.join(roles)}")
        return user

    return checker


def get_mpesa_client() -> MpesaClient:
    return MpesaClient.from_settings()


def dispatch(background_tasks: BackgroundTasks, outbox: Iterable[Notice]) -> None:
    """Queue relay pushes to run after the response has been sent."""
    for notice in outbox:
        if notice.user_ids:
            background_tasks.add_task(hub.send_to_users, list(notice.user_ids), notice.message)
