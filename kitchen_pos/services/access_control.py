from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from kitchen_pos.core.errors import AuthorizationError

logger = logging.getLogger(__name__)

SUPER_ADMIN = "super_admin"
KITCHEN_OWNER = "kitchen_owner"
MANAGER = "manager"
STAFF = "staff"

CONFIG_ROLES = (KITCHEN_OWNER, MANAGER)


@dataclass(frozen=True)
class CallerContext:
    """Who is calling: built once per request and passed down to every service."""

    user_id: int | None
    role: str
    restaurant_id: int | None = None
    revenue_center_ids: frozenset[int] = field(default_factory=frozenset)

    @property
    def is_super_admin(self) -> bool:
        return AuthorizationService.normalize_role(self.role) == SUPER_ADMIN

    @property
    def is_staff(self) -> bool:
        return AuthorizationService.normalize_role(self.role) == STAFF


class AuthorizationService:
    """Tenant-scope and role checks shared by every domain service."""

    @staticmethod
    def normalize_role(role: str | None) -> str:
        return (role or "").strip().lower()

    @staticmethod
    def log_access_denied(*, reason: str, caller: CallerContext, restaurant_id: int | None, target: str = "") -> None:
        logger.warning(
            "Access denied (%s): user_id=%s user_role=%s user_restaurant=%s restaurant_id=%s target=%s",
            reason,
            caller.user_id,
            caller.role,
            caller.restaurant_id,
            restaurant_id,
            target,
        )

    @classmethod
    def ensure_tenant_access(cls, caller: CallerContext, restaurant_id: int) -> int:
        if caller.is_super_admin:
            return restaurant_id
        if caller.restaurant_id is None or int(caller.restaurant_id) != int(restaurant_id):
            cls.log_access_denied(reason="tenant_mismatch", caller=caller, restaurant_id=restaurant_id)
            raise AuthorizationError("Restaurant not authorized")
        return restaurant_id

    @classmethod
    def ensure_role(cls, caller: CallerContext, roles: Iterable[str], restaurant_id: int | None = None) -> None:
        if restaurant_id is not None:
            cls.ensure_tenant_access(caller, restaurant_id)
        if caller.is_super_admin:
            return
        allowed = {cls.normalize_role(role) for role in roles}
        if cls.normalize_role(caller.role) not in allowed:
            cls.log_access_denied(reason="role_denied", caller=caller, restaurant_id=restaurant_id)
            raise AuthorizationError("Insufficient permissions")

    @classmethod
    def ensure_super_admin(cls, caller: CallerContext) -> None:
        if not caller.is_super_admin:
            cls.log_access_denied(reason="super_admin_required", caller=caller, restaurant_id=None)
            raise AuthorizationError("Insufficient permissions")

    @classmethod
    def ensure_revenue_center_access(cls, caller: CallerContext, revenue_center_id: int) -> None:
        """Staff only reach the revenue centers they are assigned to."""
        if not caller.is_staff:
            return
        if int(revenue_center_id) not in caller.revenue_center_ids:
            cls.log_access_denied(
                reason="revenue_center_not_assigned",
                caller=caller,
                restaurant_id=caller.restaurant_id,
                target=f"revenue_center:{revenue_center_id}",
            )
            raise AuthorizationError("Revenue center not assigned to this user")

    @staticmethod
    def visible_revenue_center_ids(caller: CallerContext) -> frozenset[int] | None:
        """None means every revenue center of the caller's restaurant."""
        if caller.is_staff:
            return caller.revenue_center_ids
        return None
