from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from kitchen_pos.core.database import get_db
from kitchen_pos.core.request_context import set_request_context
from kitchen_pos.models.user import User
from kitchen_pos.services.access_control import AuthorizationService, CallerContext
from kitchen_pos.services.auth import decode_access_token
from kitchen_pos.services.identity import IdentityProvider, get_identity_provider
from kitchen_pos.services.staff import assigned_revenue_center_ids

# Swagger "Authorize" (OAuth2 password flow) calls this endpoint
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")

logger = logging.getLogger(__name__)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _extract_user_id(payload: Dict[str, Any]) -> Optional[int]:
    raw = payload.get("sub")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


def get_current_user(
    request: Request,
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Decode the bearer JWT and load the active user it names."""
    try:
        payload = decode_access_token(token)
    except ValueError:
        raise _unauthorized("Invalid or expired token")

    user_id = _extract_user_id(payload)
    if user_id is None:
        raise _unauthorized("Invalid token (missing subject)")

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise _unauthorized("User not found or inactive")

    request.state.user = user
    set_request_context(tenant_id=user.restaurant_id, user_id=user.id)
    return user


def get_caller(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CallerContext:
    role = AuthorizationService.normalize_role(user.role)
    revenue_center_ids: frozenset[int] = frozenset()
    if role == "staff":
        revenue_center_ids = assigned_revenue_center_ids(db, user.id)
    return CallerContext(
        user_id=user.id,
        role=role,
        restaurant_id=user.restaurant_id,
        revenue_center_ids=revenue_center_ids,
    )


def require_roles(roles: Iterable[str]):
    allowed = tuple(roles)

    def _dependency(caller: CallerContext = Depends(get_caller)) -> CallerContext:
        AuthorizationService.ensure_role(caller, allowed)
        return caller

    return _dependency


def get_identity(db: Session = Depends(get_db)) -> IdentityProvider:
    return get_identity_provider(db)
