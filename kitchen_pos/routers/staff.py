from __future__ import annotations

import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from kitchen_pos.core.database import commit_or_rollback, get_db
from kitchen_pos.core.errors import IdentityProviderError
from kitchen_pos.deps import get_caller, get_identity
from kitchen_pos.models.user import User
from kitchen_pos.services import staff as staff_service
from kitchen_pos.services.access_control import CallerContext
from kitchen_pos.services.identity import IdentityProvider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["staff"])


class StaffCreate(BaseModel):
    email: EmailStr
    full_name: str
    role: Literal["manager", "staff"] = "staff"
    password: Optional[str] = None
    revenue_center_ids: List[int] = []


class StaffUpdate(BaseModel):
    full_name: Optional[str] = None
    role: Optional[Literal["manager", "staff"]] = None
    is_active: Optional[bool] = None


class StaffStatusUpdate(BaseModel):
    is_active: bool


class AssignmentCreate(BaseModel):
    revenue_center_id: int


class AssignmentReplace(BaseModel):
    revenue_center_ids: List[int]


def _staff_to_dict(db: Session, user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role,
        "restaurant_id": user.restaurant_id,
        "is_active": bool(user.is_active),
        "revenue_center_ids": sorted(staff_service.assigned_revenue_center_ids(db, user.id)),
        "created_at": user.created_at,
    }


def _identity_unavailable() -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Identity provider request failed")


@router.get("/restaurants/{restaurant_id}/staff")
def list_staff(restaurant_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return [_staff_to_dict(db, user) for user in staff_service.list_staff(db, caller, restaurant_id)]


@router.get("/restaurants/{restaurant_id}/staff/stats")
def staff_stats(restaurant_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return staff_service.staff_stats(db, caller, restaurant_id)


@router.post("/restaurants/{restaurant_id}/staff", status_code=status.HTTP_201_CREATED)
def create_staff(
    restaurant_id: int,
    payload: StaffCreate,
    caller: CallerContext = Depends(get_caller),
    identity: IdentityProvider = Depends(get_identity),
    db: Session = Depends(get_db),
):
    try:
        with commit_or_rollback(db):
            created = staff_service.create_staff(db, caller, identity, restaurant_id, payload.model_dump())
    except IdentityProviderError as exc:
        logger.exception("staff account creation failed")
        raise _identity_unavailable() from exc
    db.refresh(created.user)
    body = _staff_to_dict(db, created.user)
    body["credentials"] = {"email": created.user.email, "password": created.password}
    return body


@router.get("/staff/{user_id}")
def get_staff(user_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return _staff_to_dict(db, staff_service.get_staff(db, caller, user_id))


@router.patch("/staff/{user_id}")
def update_staff(
    user_id: int,
    payload: StaffUpdate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        user = staff_service.update_staff(db, caller, user_id, payload.model_dump(exclude_unset=True))
    db.refresh(user)
    return _staff_to_dict(db, user)


@router.patch("/staff/{user_id}/status")
def update_staff_status(
    user_id: int,
    payload: StaffStatusUpdate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        user = staff_service.update_staff_status(db, caller, user_id, payload.is_active)
    db.refresh(user)
    return _staff_to_dict(db, user)


@router.delete("/staff/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_staff(
    user_id: int,
    caller: CallerContext = Depends(get_caller),
    identity: IdentityProvider = Depends(get_identity),
    db: Session = Depends(get_db),
):
    try:
        with commit_or_rollback(db):
            staff_service.delete_staff(db, caller, identity, user_id)
    except IdentityProviderError as exc:
        logger.exception("staff account deletion failed user_id=%s", user_id)
        raise _identity_unavailable() from exc


@router.get("/users/{user_id}/revenue-centers")
def list_assignments(user_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return [
        {"user_id": a.user_id, "revenue_center_id": a.revenue_center_id}
        for a in staff_service.list_assignments(db, caller, user_id)
    ]


@router.post("/users/{user_id}/revenue-centers", status_code=status.HTTP_201_CREATED)
def assign_staff(
    user_id: int,
    payload: AssignmentCreate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        assignment = staff_service.assign_staff(db, caller, user_id, payload.revenue_center_id)
    return {"user_id": assignment.user_id, "revenue_center_id": assignment.revenue_center_id}


@router.put("/users/{user_id}/revenue-centers")
def replace_assignments(
    user_id: int,
    payload: AssignmentReplace,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        assignments = staff_service.replace_assignments(db, caller, user_id, payload.revenue_center_ids)
    return [{"user_id": a.user_id, "revenue_center_id": a.revenue_center_id} for a in assignments]


@router.delete("/users/{user_id}/revenue-centers/{revenue_center_id}", status_code=status.HTTP_204_NO_CONTENT)
def unassign_staff(
    user_id: int,
    revenue_center_id: int,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        staff_service.unassign_staff(db, caller, user_id, revenue_center_id)
