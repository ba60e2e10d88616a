"""Kitchen owner provisioning and identity repair.

Provisioning writes the owner row first and then calls the identity
provider; the provider is an external system, so a failure there is undone
with a compensating delete instead of a rollback. Both entry points commit
their own work for that reason.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.orm import Session

from kitchen_pos.core.errors import (
    ConflictError,
    IdentityAccountExistsError,
    IdentityProviderError,
    NotFoundError,
    ValidationError,
)
from kitchen_pos.models.kitchen_owner import KitchenOwner
from kitchen_pos.models.user import User
from kitchen_pos.services.identity import IdentityAccountInfo, IdentityProvider
from kitchen_pos.services.kitchen_owners import normalize_plan, parse_amount, parse_timestamp
from kitchen_pos.services.passwords import generate_password

logger = logging.getLogger(__name__)
PROVISIONING_PREFIX = "[PROVISIONING]"

REQUIRED_FIELDS = (
    "email",
    "full_name",
    "subscription_plan",
    "payment_id",
    "subscription_amount",
    "subscription_expires_at",
)

ALREADY_LINKED = "already_linked"
CREATED = "created"
LINKED = "linked"


@dataclass
class ProvisioningResult:
    owner: KitchenOwner
    user: User
    password: str | None
    repaired: bool = False


@dataclass
class RepairResult:
    status: str
    user: User
    account_id: str | None
    password: str | None = None


def validate_provisioning_payload(payload: dict[str, Any]) -> dict[str, Any]:
    for field in REQUIRED_FIELDS:
        value = payload.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"Missing required field: {field}")

    try:
        email = validate_email(str(payload["email"]).strip(), check_deliverability=False).normalized.lower()
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid email: {exc}") from exc

    return {
        "email": email,
        "full_name": str(payload["full_name"]).strip(),
        "subscription_plan": normalize_plan(payload["subscription_plan"]),
        "payment_id": str(payload["payment_id"]).strip(),
        "subscription_amount": parse_amount(payload["subscription_amount"]),
        "subscription_expires_at": parse_timestamp(payload["subscription_expires_at"]),
    }


def _owner_user(db: Session, owner: KitchenOwner) -> User | None:
    if owner.user_id is not None:
        user = db.query(User).filter(User.id == owner.user_id).first()
        if user is not None:
            return user
    return db.query(User).filter(User.email == owner.email).first()


def _ensure_owner_user(db: Session, owner: KitchenOwner) -> User:
    user = _owner_user(db, owner)
    if user is None:
        user = User(email=owner.email, full_name=owner.full_name, role="kitchen_owner", is_active=True)
        db.add(user)
        db.flush()
    if owner.user_id != user.id:
        owner.user_id = user.id
    return user


def _has_live_account(identity: IdentityProvider, user: User | None) -> bool:
    if user is None or not user.auth_user_id:
        return False
    return identity.get_account(user.auth_user_id) is not None


def _create_or_link_account(identity: IdentityProvider, email: str) -> tuple[IdentityAccountInfo, str | None, str]:
    password = generate_password()
    try:
        return identity.create_account(email, password), password, CREATED
    except IdentityAccountExistsError:
        account = identity.find_account_by_email(email)
        if account is None:
            raise IdentityProviderError(f"Identity account for {email} reported as existing but not found")
        return account, None, LINKED


def repair_identity(db: Session, identity: IdentityProvider, email: str) -> RepairResult:
    """Make sure the store user for ``email`` points at a live identity account.

    Idempotent: a second run finds the link in place and changes nothing.
    """
    normalized = email.strip().lower()
    user = db.query(User).filter(User.email == normalized).first()
    if user is None:
        raise NotFoundError(f"User {normalized} not found")

    if _has_live_account(identity, user):
        logger.info("%s already linked user_id=%s", PROVISIONING_PREFIX, user.id)
        return RepairResult(status=ALREADY_LINKED, user=user, account_id=user.auth_user_id)

    account, password, status = _create_or_link_account(identity, normalized)
    user.auth_user_id = account.id

    owner = db.query(KitchenOwner).filter(KitchenOwner.email == normalized).first()
    if owner is not None and owner.user_id != user.id:
        owner.user_id = user.id

    db.commit()
    logger.info("%s repaired user_id=%s status=%s", PROVISIONING_PREFIX, user.id, status)
    return RepairResult(status=status, user=user, account_id=account.id, password=password)


def provision_kitchen_owner(db: Session, identity: IdentityProvider, payload: dict[str, Any]) -> ProvisioningResult:
    data = validate_provisioning_payload(payload)

    existing = db.query(KitchenOwner).filter(KitchenOwner.email == data["email"]).first()
    if existing is not None:
        if _has_live_account(identity, _owner_user(db, existing)):
            raise ConflictError("Kitchen owner with this email already exists")
        logger.warning("%s owner without identity account, repairing owner_id=%s", PROVISIONING_PREFIX, existing.id)
        _ensure_owner_user(db, existing)
        db.commit()
        repaired = repair_identity(db, identity, existing.email)
        db.refresh(existing)
        return ProvisioningResult(owner=existing, user=repaired.user, password=repaired.password, repaired=True)

    owner = KitchenOwner(**data, is_setup_completed=False)
    db.add(owner)
    db.commit()
    db.refresh(owner)

    password = generate_password()
    try:
        account = identity.create_account(owner.email, password)
    except IdentityProviderError:
        logger.exception("%s identity account creation failed, removing owner_id=%s", PROVISIONING_PREFIX, owner.id)
        db.rollback()
        db.delete(owner)
        db.commit()
        raise

    user = _owner_user(db, owner)
    if user is None:
        user = User(email=owner.email, full_name=owner.full_name, role="kitchen_owner", is_active=True)
        db.add(user)
    user.auth_user_id = account.id
    db.flush()
    owner.user_id = user.id
    db.commit()
    db.refresh(owner)

    logger.info("%s kitchen owner provisioned owner_id=%s user_id=%s", PROVISIONING_PREFIX, owner.id, user.id)
    return ProvisioningResult(owner=owner, user=user, password=password)
