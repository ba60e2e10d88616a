from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from kitchen_pos.core.errors import AuthorizationError, NotFoundError, ValidationError
from kitchen_pos.models.kitchen_owner import SUBSCRIPTION_PLANS, KitchenOwner
from kitchen_pos.services.access_control import AuthorizationService, CallerContext
from kitchen_pos.services.money import ZERO, to_money

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("full_name", "subscription_plan", "payment_id", "subscription_amount", "subscription_expires_at")


def normalize_plan(value: str | None) -> str:
    normalized = (value or "").strip().lower()
    if normalized not in SUBSCRIPTION_PLANS:
        raise ValidationError(f"Invalid subscription plan: {value}. Must be one of: {', '.join(SUBSCRIPTION_PLANS)}")
    return normalized


def parse_amount(value) -> Decimal:
    try:
        amount = to_money(value)
    except ValueError as exc:
        raise ValidationError("Invalid subscription_amount") from exc
    if amount < 0:
        raise ValidationError("subscription_amount cannot be negative")
    return amount


def parse_timestamp(value) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip())
        except ValueError as exc:
            raise ValidationError("Invalid subscription_expires_at") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def list_owners(db: Session, caller: CallerContext) -> list[KitchenOwner]:
    AuthorizationService.ensure_super_admin(caller)
    return db.query(KitchenOwner).order_by(KitchenOwner.created_at.desc(), KitchenOwner.id.desc()).all()


def get_owner(db: Session, caller: CallerContext, owner_id: int) -> KitchenOwner:
    owner = db.query(KitchenOwner).filter(KitchenOwner.id == owner_id).first()
    if owner is None:
        raise NotFoundError("Kitchen owner not found")
    if not caller.is_super_admin and owner.user_id != caller.user_id:
        AuthorizationService.log_access_denied(reason="owner_mismatch", caller=caller, restaurant_id=None)
        raise AuthorizationError("Insufficient permissions")
    return owner


def update_owner(db: Session, caller: CallerContext, owner_id: int, values: dict) -> KitchenOwner:
    AuthorizationService.ensure_super_admin(caller)
    owner = get_owner(db, caller, owner_id)
    for field in EDITABLE_FIELDS:
        if field not in values:
            continue
        value = values[field]
        if field == "subscription_plan":
            value = normalize_plan(value)
        elif field == "subscription_amount":
            value = parse_amount(value)
        elif field == "subscription_expires_at":
            value = parse_timestamp(value)
        elif field == "full_name" and not (value or "").strip():
            raise ValidationError("full_name cannot be empty")
        setattr(owner, field, value)
    db.flush()
    return owner


def mark_setup_completed(db: Session, caller: CallerContext, owner_id: int) -> KitchenOwner:
    owner = get_owner(db, caller, owner_id)
    owner.is_setup_completed = True
    db.flush()
    return owner


def delete_owner(db: Session, caller: CallerContext, owner_id: int) -> None:
    AuthorizationService.ensure_super_admin(caller)
    owner = get_owner(db, caller, owner_id)
    db.delete(owner)
    db.flush()
    logger.info("kitchen owner deleted id=%s", owner_id)


def subscription_stats(db: Session, caller: CallerContext, now: datetime | None = None) -> dict:
    AuthorizationService.ensure_super_admin(caller)
    current = now or datetime.now(timezone.utc)
    owners = db.query(KitchenOwner).all()

    total_revenue = ZERO
    monthly_revenue = ZERO
    plan_distribution: dict[str, int] = {}
    for owner in owners:
        amount = to_money(owner.subscription_amount)
        total_revenue += amount
        created = owner.created_at
        if created is not None and created.year == current.year and created.month == current.month:
            monthly_revenue += amount
        plan_distribution[owner.subscription_plan] = plan_distribution.get(owner.subscription_plan, 0) + 1

    return {
        "total_owners": len(owners),
        "total_revenue": total_revenue,
        "monthly_revenue": monthly_revenue,
        "plan_distribution": plan_distribution,
    }
