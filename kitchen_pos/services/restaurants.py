from __future__ import annotations

import logging
import re
import unicodedata

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kitchen_pos.core.errors import ConflictError, NotFoundError, ValidationError
from kitchen_pos.models.kitchen_owner import KitchenOwner
from kitchen_pos.models.restaurant import RESTAURANT_STATUSES, Restaurant
from kitchen_pos.models.user import User
from kitchen_pos.services.access_control import (
    KITCHEN_OWNER,
    AuthorizationService,
    CallerContext,
)

logger = logging.getLogger(__name__)

DOMAIN_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]{1,62}[a-z0-9])$")
EDITABLE_FIELDS = ("name", "address", "phone_number", "domain_name")


def normalize_domain(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value or "")
    ascii_text = normalized.encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-zA-Z0-9]+", "-", ascii_text.lower()).strip("-")
    slug = re.sub(r"-{2,}", "-", slug)
    if not DOMAIN_PATTERN.match(slug):
        raise ValidationError("Invalid domain name")
    return slug


def is_domain_available(db: Session, domain: str, exclude_id: int | None = None) -> bool:
    query = db.query(Restaurant.id).filter(func.lower(Restaurant.domain_name) == normalize_domain(domain))
    if exclude_id is not None:
        query = query.filter(Restaurant.id != exclude_id)
    return query.first() is None


def get_restaurant(db: Session, caller: CallerContext, restaurant_id: int) -> Restaurant:
    restaurant = db.query(Restaurant).filter(Restaurant.id == restaurant_id).first()
    if restaurant is None:
        raise NotFoundError("Restaurant not found")
    AuthorizationService.ensure_tenant_access(caller, restaurant.id)
    return restaurant


def list_restaurants(db: Session, caller: CallerContext) -> list[Restaurant]:
    query = db.query(Restaurant)
    if not caller.is_super_admin:
        if caller.restaurant_id is None:
            return []
        query = query.filter(Restaurant.id == caller.restaurant_id)
    return query.order_by(Restaurant.created_at.desc(), Restaurant.id.desc()).all()


def _flush_unique(db: Session, domain: str) -> None:
    try:
        db.flush()
    except IntegrityError as exc:
        raise ConflictError(f"Domain name '{domain}' is already taken") from exc


def create_restaurant(db: Session, caller: CallerContext, values: dict) -> Restaurant:
    """Create the owner's restaurant and complete their setup.

    Links the owner's login user to the new restaurant and marks the
    kitchen owner record ``is_setup_completed``.
    """
    AuthorizationService.ensure_role(caller, (KITCHEN_OWNER,))
    owner = _resolve_owner(db, caller, values.get("owner_id"))

    domain = normalize_domain(values.get("domain_name", ""))
    if not is_domain_available(db, domain):
        raise ConflictError(f"Domain name '{domain}' is already taken")

    name = (values.get("name") or "").strip()
    if not name:
        raise ValidationError("Restaurant name is required")

    restaurant = Restaurant(
        owner_id=owner.id,
        name=name,
        address=values.get("address"),
        phone_number=values.get("phone_number"),
        domain_name=domain,
        status="active",
    )
    db.add(restaurant)
    _flush_unique(db, domain)

    if owner.user_id is not None:
        user = db.query(User).filter(User.id == owner.user_id).first()
        if user is not None:
            user.restaurant_id = restaurant.id
    owner.is_setup_completed = True
    db.flush()
    logger.info("restaurant created id=%s owner_id=%s domain=%s", restaurant.id, owner.id, domain)
    return restaurant


def _resolve_owner(db: Session, caller: CallerContext, owner_id: int | None) -> KitchenOwner:
    if caller.is_super_admin:
        if owner_id is None:
            raise ValidationError("owner_id is required")
        owner = db.query(KitchenOwner).filter(KitchenOwner.id == owner_id).first()
    else:
        owner = db.query(KitchenOwner).filter(KitchenOwner.user_id == caller.user_id).first()
    if owner is None:
        raise NotFoundError("Kitchen owner not found")
    return owner


def update_restaurant(db: Session, caller: CallerContext, restaurant_id: int, values: dict) -> Restaurant:
    restaurant = get_restaurant(db, caller, restaurant_id)
    AuthorizationService.ensure_role(caller, (KITCHEN_OWNER,), restaurant.id)
    for field in EDITABLE_FIELDS:
        if field not in values:
            continue
        value = values[field]
        if field == "domain_name":
            value = normalize_domain(value)
            if not is_domain_available(db, value, exclude_id=restaurant.id):
                raise ConflictError(f"Domain name '{value}' is already taken")
        setattr(restaurant, field, value)
    _flush_unique(db, restaurant.domain_name)
    return restaurant


def update_restaurant_status(db: Session, caller: CallerContext, restaurant_id: int, status: str) -> Restaurant:
    AuthorizationService.ensure_super_admin(caller)
    restaurant = get_restaurant(db, caller, restaurant_id)
    normalized = (status or "").strip().lower()
    if normalized not in RESTAURANT_STATUSES:
        raise ValidationError(f"Invalid restaurant status: {status}")
    restaurant.status = normalized
    db.flush()
    logger.info("restaurant status changed id=%s status=%s", restaurant.id, normalized)
    return restaurant


def delete_restaurant(db: Session, caller: CallerContext, restaurant_id: int) -> None:
    AuthorizationService.ensure_super_admin(caller)
    restaurant = get_restaurant(db, caller, restaurant_id)
    db.delete(restaurant)
    db.flush()
    logger.info("restaurant deleted id=%s", restaurant_id)


def restaurant_stats(db: Session, caller: CallerContext) -> dict:
    AuthorizationService.ensure_super_admin(caller)
    rows = db.query(Restaurant.status, func.count(Restaurant.id)).group_by(Restaurant.status).all()
    by_status = {status: int(count) for status, count in rows}
    return {
        "total": sum(by_status.values()),
        "active": by_status.get("active", 0),
        "inactive": by_status.get("inactive", 0),
        "suspended": by_status.get("suspended", 0),
    }
