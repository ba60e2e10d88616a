"""Manager and staff accounts of a restaurant, and their revenue centers.

A staff member is a ``users`` row (role ``manager`` or ``staff``) linked to
an identity provider account through ``auth_user_id``. Staff only see the
revenue centers they are assigned to; managers see the whole restaurant.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kitchen_pos.core.errors import (
    ConflictError,
    IdentityAccountExistsError,
    NotFoundError,
    ReferentialError,
    ValidationError,
)
from kitchen_pos.models.revenue_center import RevenueCenter
from kitchen_pos.models.staff_assignment import StaffAssignment
from kitchen_pos.models.user import User
from kitchen_pos.services.access_control import CONFIG_ROLES, AuthorizationService, CallerContext
from kitchen_pos.services.identity import IdentityProvider
from kitchen_pos.services.passwords import generate_password

logger = logging.getLogger(__name__)

STAFF_ROLES = ("manager", "staff")
MIN_PASSWORD_LENGTH = 8


@dataclass
class CreatedStaff:
    user: User
    password: str


def assigned_revenue_center_ids(db: Session, user_id: int) -> frozenset[int]:
    rows = db.query(StaffAssignment.revenue_center_id).filter(StaffAssignment.user_id == user_id).all()
    return frozenset(int(row[0]) for row in rows)


def _get_staff_user(db: Session, caller: CallerContext, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError("User not found")
    if user.restaurant_id is None:
        raise ReferentialError("User is not attached to a restaurant")
    AuthorizationService.ensure_tenant_access(caller, user.restaurant_id)
    return user


def _get_managed_user(db: Session, caller: CallerContext, user_id: int) -> User:
    user = _get_staff_user(db, caller, user_id)
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, user.restaurant_id)
    if user.role not in STAFF_ROLES:
        raise ValidationError("Only manager and staff accounts can be managed here")
    return user


def _validate_role(value: str | None) -> str:
    role = (value or "").strip().lower()
    if role not in STAFF_ROLES:
        raise ValidationError(f"Invalid staff role: {value}")
    return role


def _center_ids_in_restaurant(db: Session, restaurant_id: int, revenue_center_ids) -> list[int]:
    ids = sorted({int(center_id) for center_id in (revenue_center_ids or [])})
    if not ids:
        return []
    found = {
        int(row[0])
        for row in db.query(RevenueCenter.id)
        .filter(RevenueCenter.id.in_(ids), RevenueCenter.restaurant_id == restaurant_id)
        .all()
    }
    missing = [center_id for center_id in ids if center_id not in found]
    if missing:
        raise ReferentialError(f"Revenue centers not found in this restaurant: {missing}")
    return ids


def list_staff(db: Session, caller: CallerContext, restaurant_id: int) -> list[User]:
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, restaurant_id)
    return (
        db.query(User)
        .filter(User.restaurant_id == restaurant_id, User.role.in_(STAFF_ROLES))
        .order_by(User.full_name, User.id)
        .all()
    )


def get_staff(db: Session, caller: CallerContext, user_id: int) -> User:
    return _get_managed_user(db, caller, user_id)


def create_staff(
    db: Session,
    caller: CallerContext,
    identity: IdentityProvider,
    restaurant_id: int,
    values: dict,
) -> CreatedStaff:
    """Create the login account and the ``users`` row, then assign centers.

    A generated password is used when none is given. The identity account is
    deleted again when the store write fails.
    """
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, restaurant_id)

    full_name = (values.get("full_name") or "").strip()
    if not full_name:
        raise ValidationError("Staff full name is required")
    role = _validate_role(values.get("role", "staff"))
    try:
        email = validate_email(str(values.get("email") or "").strip(), check_deliverability=False).normalized.lower()
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid email: {exc}") from exc

    password = values.get("password") or generate_password()
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    center_ids = _center_ids_in_restaurant(db, restaurant_id, values.get("revenue_center_ids"))
    if db.query(User.id).filter(func.lower(User.email) == email).first() is not None:
        raise ConflictError("A user with this email already exists")

    try:
        account = identity.create_account(email, password)
    except IdentityAccountExistsError as exc:
        raise ConflictError("A login account with this email already exists") from exc

    user = User(
        auth_user_id=account.id,
        email=email,
        full_name=full_name,
        role=role,
        restaurant_id=restaurant_id,
        is_active=True,
    )
    try:
        with db.begin_nested():
            db.add(user)
    except IntegrityError as exc:
        identity.delete_account(account.id)
        raise ConflictError("A user with this email already exists") from exc

    for center_id in center_ids:
        db.add(StaffAssignment(user_id=user.id, revenue_center_id=center_id))
    db.flush()
    logger.info("staff created user_id=%s restaurant_id=%s role=%s", user.id, restaurant_id, role)
    return CreatedStaff(user=user, password=password)


def update_staff(db: Session, caller: CallerContext, user_id: int, values: dict) -> User:
    user = _get_managed_user(db, caller, user_id)
    if "full_name" in values:
        full_name = (values["full_name"] or "").strip()
        if not full_name:
            raise ValidationError("Staff full name is required")
        user.full_name = full_name
    if "role" in values:
        user.role = _validate_role(values["role"])
    if "is_active" in values:
        user.is_active = bool(values["is_active"])
    db.flush()
    return user


def update_staff_status(db: Session, caller: CallerContext, user_id: int, is_active: bool) -> User:
    return update_staff(db, caller, user_id, {"is_active": is_active})


def delete_staff(db: Session, caller: CallerContext, identity: IdentityProvider, user_id: int) -> None:
    """Remove the user, its assignments and its identity account."""
    user = _get_managed_user(db, caller, user_id)
    auth_user_id = user.auth_user_id
    db.query(StaffAssignment).filter(StaffAssignment.user_id == user.id).delete(synchronize_session=False)
    db.delete(user)
    db.flush()
    if auth_user_id:
        identity.delete_account(auth_user_id)
    logger.info("staff deleted user_id=%s", user_id)


def staff_stats(db: Session, caller: CallerContext, restaurant_id: int) -> dict:
    members = list_staff(db, caller, restaurant_id)
    active = sum(1 for user in members if user.is_active)
    return {
        "total": len(members),
        "active": active,
        "inactive": len(members) - active,
        "managers": sum(1 for user in members if user.role == "manager"),
        "staff": sum(1 for user in members if user.role == "staff"),
    }


def list_assignments(db: Session, caller: CallerContext, user_id: int) -> list[StaffAssignment]:
    user = _get_staff_user(db, caller, user_id)
    return (
        db.query(StaffAssignment)
        .filter(StaffAssignment.user_id == user.id)
        .order_by(StaffAssignment.revenue_center_id)
        .all()
    )


def assign_staff(db: Session, caller: CallerContext, user_id: int, revenue_center_id: int) -> StaffAssignment:
    user = _get_staff_user(db, caller, user_id)
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, user.restaurant_id)

    center = db.query(RevenueCenter).filter(RevenueCenter.id == revenue_center_id).first()
    if center is None or int(center.restaurant_id) != int(user.restaurant_id):
        raise ReferentialError("Revenue center not found in the user's restaurant")

    assignment = StaffAssignment(user_id=user.id, revenue_center_id=center.id)
    try:
        with db.begin_nested():
            db.add(assignment)
    except IntegrityError as exc:
        raise ConflictError("User is already assigned to this revenue center") from exc
    return assignment


def unassign_staff(db: Session, caller: CallerContext, user_id: int, revenue_center_id: int) -> None:
    user = _get_staff_user(db, caller, user_id)
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, user.restaurant_id)
    assignment = (
        db.query(StaffAssignment)
        .filter(StaffAssignment.user_id == user.id, StaffAssignment.revenue_center_id == revenue_center_id)
        .first()
    )
    if assignment is None:
        raise NotFoundError("Assignment not found")
    db.delete(assignment)
    db.flush()


def replace_assignments(
    db: Session,
    caller: CallerContext,
    user_id: int,
    revenue_center_ids,
) -> list[StaffAssignment]:
    """Make ``revenue_center_ids`` the user's complete set of assignments."""
    user = _get_staff_user(db, caller, user_id)
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, user.restaurant_id)
    center_ids = _center_ids_in_restaurant(db, user.restaurant_id, revenue_center_ids)

    db.query(StaffAssignment).filter(StaffAssignment.user_id == user.id).delete(synchronize_session=False)
    assignments = [StaffAssignment(user_id=user.id, revenue_center_id=center_id) for center_id in center_ids]
    db.add_all(assignments)
    db.flush()
    return assignments
