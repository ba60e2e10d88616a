from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kitchen_pos.core.errors import ConflictError, NotFoundError, ValidationError
from kitchen_pos.models.order_item import OrderItem
from kitchen_pos.models.revenue_center import REVENUE_CENTER_TYPES, RevenueCenter
from kitchen_pos.services.access_control import CONFIG_ROLES, AuthorizationService, CallerContext

logger = logging.getLogger(__name__)

DEFAULT_REVENUE_CENTERS = (
    ("Main Dining", "restaurant"),
    ("Bar", "bar"),
    ("Takeout", "takeout"),
)


def _validate_type(value: str) -> str:
    normalized = (value or "").strip().lower()
    if normalized not in REVENUE_CENTER_TYPES:
        raise ValidationError(f"Invalid revenue center type: {value}")
    return normalized


def get_revenue_center(db: Session, caller: CallerContext, revenue_center_id: int) -> RevenueCenter:
    center = db.query(RevenueCenter).filter(RevenueCenter.id == revenue_center_id).first()
    if center is None:
        raise NotFoundError("Revenue center not found")
    AuthorizationService.ensure_tenant_access(caller, center.restaurant_id)
    return center


def list_revenue_centers(
    db: Session,
    caller: CallerContext,
    restaurant_id: int,
    active_only: bool = False,
) -> list[RevenueCenter]:
    AuthorizationService.ensure_tenant_access(caller, restaurant_id)
    query = db.query(RevenueCenter).filter(RevenueCenter.restaurant_id == restaurant_id)
    if active_only:
        query = query.filter(RevenueCenter.is_active.is_(True))
    visible = AuthorizationService.visible_revenue_center_ids(caller)
    if visible is not None:
        query = query.filter(RevenueCenter.id.in_(list(visible)))
    return query.order_by(RevenueCenter.id).all()


def create_revenue_center(db: Session, caller: CallerContext, restaurant_id: int, values: dict) -> RevenueCenter:
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, restaurant_id)
    name = (values.get("name") or "").strip()
    if not name:
        raise ValidationError("Revenue center name is required")
    center = RevenueCenter(
        restaurant_id=restaurant_id,
        name=name,
        type=_validate_type(values.get("type", "")),
        is_active=bool(values.get("is_active", True)),
    )
    db.add(center)
    db.flush()
    return center


def create_default_revenue_centers(db: Session, caller: CallerContext, restaurant_id: int) -> list[RevenueCenter]:
    return [
        create_revenue_center(db, caller, restaurant_id, {"name": name, "type": center_type})
        for name, center_type in DEFAULT_REVENUE_CENTERS
    ]


def update_revenue_center(db: Session, caller: CallerContext, revenue_center_id: int, values: dict) -> RevenueCenter:
    center = get_revenue_center(db, caller, revenue_center_id)
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, center.restaurant_id)
    if "name" in values:
        name = (values["name"] or "").strip()
        if not name:
            raise ValidationError("Revenue center name is required")
        center.name = name
    if "type" in values:
        center.type = _validate_type(values["type"])
    if "is_active" in values:
        center.is_active = bool(values["is_active"])
    db.flush()
    return center


def toggle_revenue_center(db: Session, caller: CallerContext, revenue_center_id: int, is_active: bool) -> RevenueCenter:
    return update_revenue_center(db, caller, revenue_center_id, {"is_active": is_active})


def delete_revenue_center(db: Session, caller: CallerContext, revenue_center_id: int) -> None:
    """Delete a center with no order history; deactivate it otherwise."""
    center = get_revenue_center(db, caller, revenue_center_id)
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, center.restaurant_id)
    in_use = db.query(OrderItem.id).filter(OrderItem.revenue_center_id == center.id).first()
    if in_use is not None:
        raise ConflictError("Revenue center has order history; deactivate it instead")
    try:
        with db.begin_nested():
            db.delete(center)
    except IntegrityError as exc:
        raise ConflictError("Revenue center is still referenced and cannot be deleted") from exc
    logger.info("revenue center deleted id=%s restaurant_id=%s", revenue_center_id, center.restaurant_id)


def revenue_center_stats(db: Session, caller: CallerContext, restaurant_id: int) -> dict:
    centers = list_revenue_centers(db, caller, restaurant_id)
    active = sum(1 for center in centers if center.is_active)
    type_distribution: dict[str, int] = {}
    for center in centers:
        type_distribution[center.type] = type_distribution.get(center.type, 0) + 1
    return {
        "total": len(centers),
        "active": active,
        "inactive": len(centers) - active,
        "type_distribution": type_distribution,
    }
