from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Header, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from kitchen_pos.core.config import IS_PROD, ONBOARDING_API_TOKEN
from kitchen_pos.core.database import commit_or_rollback, get_db
from kitchen_pos.core.errors import DomainError, IdentityProviderError
from kitchen_pos.deps import get_caller, get_identity
from kitchen_pos.models.kitchen_owner import KitchenOwner
from kitchen_pos.services import kitchen_owners as owner_service
from kitchen_pos.services.access_control import AuthorizationService, CallerContext
from kitchen_pos.services.identity import IdentityProvider
from kitchen_pos.services.money import to_money
from kitchen_pos.services.provisioning import provision_kitchen_owner, repair_identity

router = APIRouter(prefix="/api/kitchen-owners", tags=["kitchen-owners"])

logger = logging.getLogger(__name__)


class OwnerUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, max_length=255)
    subscription_plan: Optional[str] = None
    payment_id: Optional[str] = Field(default=None, max_length=255)
    subscription_amount: Optional[Decimal] = None
    subscription_expires_at: Optional[datetime] = None


class RepairRequest(BaseModel):
    email: EmailStr


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _onboarding_token_error(x_onboarding_token: str | None) -> JSONResponse | None:
    configured = (ONBOARDING_API_TOKEN or "").strip()
    incoming = (x_onboarding_token or "").strip()
    if not configured:
        if IS_PROD:
            return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Provisioning requires ONBOARDING_API_TOKEN")
        return None
    if incoming != configured:
        return _error(status.HTTP_401_UNAUTHORIZED, "Invalid onboarding token")
    return None


def _owner_to_dict(owner: KitchenOwner) -> dict:
    return {
        "id": owner.id,
        "email": owner.email,
        "full_name": owner.full_name,
        "subscription_plan": owner.subscription_plan,
        "payment_id": owner.payment_id,
        "subscription_amount": str(to_money(owner.subscription_amount)),
        "subscription_expires_at": owner.subscription_expires_at,
        "is_setup_completed": bool(owner.is_setup_completed),
        "user_id": owner.user_id,
        "created_at": owner.created_at,
    }


@router.post("/provision", status_code=status.HTTP_201_CREATED)
def provision(
    payload: Dict[str, Any] = Body(...),
    x_onboarding_token: str | None = Header(default=None),
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity),
):
    token_error = _onboarding_token_error(x_onboarding_token)
    if token_error is not None:
        return token_error

    try:
        result = provision_kitchen_owner(db, identity, payload)
    except DomainError as exc:
        db.rollback()
        return _error(exc.status_code, exc.message)
    except IdentityProviderError:
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to create user account")

    owner = result.owner
    message = "Kitchen owner account repaired" if result.repaired else "Kitchen owner provisioned"
    return {
        "success": True,
        "message": message,
        "repaired": result.repaired,
        "data": {
            "id": owner.id,
            "email": owner.email,
            "full_name": owner.full_name,
            "subscription_plan": owner.subscription_plan,
            "credentials": {"email": owner.email, "password": result.password},
        },
    }


@router.post("/repair-identity")
def repair(
    payload: RepairRequest,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity),
):
    AuthorizationService.ensure_super_admin(caller)
    try:
        result = repair_identity(db, identity, payload.email)
    except IdentityProviderError:
        db.rollback()
        logger.exception("identity repair failed")
        return _error(status.HTTP_502_BAD_GATEWAY, "Identity provider request failed")
    return {
        "status": result.status,
        "user_id": result.user.id,
        "account_id": result.account_id,
        "password": result.password,
    }


@router.get("")
def list_owners(caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return [_owner_to_dict(owner) for owner in owner_service.list_owners(db, caller)]


@router.get("/stats")
def subscription_stats(caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    stats = owner_service.subscription_stats(db, caller)
    stats["total_revenue"] = str(stats["total_revenue"])
    stats["monthly_revenue"] = str(stats["monthly_revenue"])
    return stats


@router.get("/{owner_id}")
def get_owner(owner_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return _owner_to_dict(owner_service.get_owner(db, caller, owner_id))


@router.patch("/{owner_id}")
def update_owner(
    owner_id: int,
    payload: OwnerUpdate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        owner = owner_service.update_owner(db, caller, owner_id, payload.model_dump(exclude_unset=True))
    db.refresh(owner)
    return _owner_to_dict(owner)


@router.post("/{owner_id}/setup-complete")
def mark_setup_completed(owner_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    with commit_or_rollback(db):
        owner = owner_service.mark_setup_completed(db, caller, owner_id)
    db.refresh(owner)
    return _owner_to_dict(owner)


@router.delete("/{owner_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_owner(owner_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    with commit_or_rollback(db):
        owner_service.delete_owner(db, caller, owner_id)
