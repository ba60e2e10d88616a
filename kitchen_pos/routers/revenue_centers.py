from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from kitchen_pos.core.database import commit_or_rollback, get_db
from kitchen_pos.deps import get_caller
from kitchen_pos.models.revenue_center import RevenueCenter
from kitchen_pos.services import revenue_centers as center_service
from kitchen_pos.services.access_control import CallerContext

router = APIRouter(prefix="/api", tags=["revenue-centers"])


class RevenueCenterCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    type: str
    is_active: bool = True


class RevenueCenterUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    type: Optional[str] = None
    is_active: Optional[bool] = None


class RevenueCenterToggle(BaseModel):
    is_active: bool


def _center_to_dict(center: RevenueCenter) -> dict:
    return {
        "id": center.id,
        "restaurant_id": center.restaurant_id,
        "name": center.name,
        "type": center.type,
        "is_active": bool(center.is_active),
        "created_at": center.created_at,
    }


@router.get("/restaurants/{restaurant_id}/revenue-centers")
def list_revenue_centers(
    restaurant_id: int,
    active_only: bool = False,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    centers = center_service.list_revenue_centers(db, caller, restaurant_id, active_only=active_only)
    return [_center_to_dict(center) for center in centers]


@router.get("/restaurants/{restaurant_id}/revenue-centers/stats")
def revenue_center_stats(restaurant_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return center_service.revenue_center_stats(db, caller, restaurant_id)


@router.post("/restaurants/{restaurant_id}/revenue-centers", status_code=status.HTTP_201_CREATED)
def create_revenue_center(
    restaurant_id: int,
    payload: RevenueCenterCreate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        center = center_service.create_revenue_center(db, caller, restaurant_id, payload.model_dump())
    db.refresh(center)
    return _center_to_dict(center)


@router.post("/restaurants/{restaurant_id}/revenue-centers/defaults", status_code=status.HTTP_201_CREATED)
def create_default_revenue_centers(
    restaurant_id: int,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        centers = center_service.create_default_revenue_centers(db, caller, restaurant_id)
    return [_center_to_dict(center) for center in centers]


@router.get("/revenue-centers/{revenue_center_id}")
def get_revenue_center(revenue_center_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return _center_to_dict(center_service.get_revenue_center(db, caller, revenue_center_id))


@router.patch("/revenue-centers/{revenue_center_id}")
def update_revenue_center(
    revenue_center_id: int,
    payload: RevenueCenterUpdate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        center = center_service.update_revenue_center(
            db, caller, revenue_center_id, payload.model_dump(exclude_unset=True)
        )
    db.refresh(center)
    return _center_to_dict(center)


@router.patch("/revenue-centers/{revenue_center_id}/active")
def toggle_revenue_center(
    revenue_center_id: int,
    payload: RevenueCenterToggle,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        center = center_service.toggle_revenue_center(db, caller, revenue_center_id, payload.is_active)
    db.refresh(center)
    return _center_to_dict(center)


@router.delete("/revenue-centers/{revenue_center_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_revenue_center(
    revenue_center_id: int,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        center_service.delete_revenue_center(db, caller, revenue_center_id)
