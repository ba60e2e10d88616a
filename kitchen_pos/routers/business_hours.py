from __future__ import annotations

from datetime import datetime, time
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from kitchen_pos.core.database import commit_or_rollback, get_db
from kitchen_pos.deps import get_caller
from kitchen_pos.models.business_hours import BusinessHours
from kitchen_pos.services import business_hours as hours_service
from kitchen_pos.services.access_control import CallerContext
from kitchen_pos.services.money import utcnow

router = APIRouter(prefix="/api", tags=["business-hours"])


class BusinessHoursRow(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    open_time: Optional[time] = None
    close_time: Optional[time] = None
    is_closed: bool = False


class BusinessHoursReplace(BaseModel):
    hours: List[BusinessHoursRow]


class DefaultHoursRequest(BaseModel):
    revenue_center_ids: List[int] = Field(min_length=1)


class CopyHoursRequest(BaseModel):
    source_revenue_center_id: int


def _hours_to_dict(hours: BusinessHours) -> dict:
    return {
        "id": hours.id,
        "revenue_center_id": hours.revenue_center_id,
        "day_of_week": hours.day_of_week,
        "day_name": hours_service.day_name(hours.day_of_week),
        "open_time": hours.open_time.strftime("%H:%M") if hours.open_time else None,
        "close_time": hours.close_time.strftime("%H:%M") if hours.close_time else None,
        "is_closed": bool(hours.is_closed),
    }


@router.get("/restaurants/{restaurant_id}/business-hours")
def list_business_hours(
    restaurant_id: int,
    revenue_center_id: Optional[int] = None,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    rows = hours_service.list_business_hours(db, caller, restaurant_id, revenue_center_id)
    return [_hours_to_dict(row) for row in rows]


@router.get("/restaurants/{restaurant_id}/business-hours/stats")
def business_hours_stats(
    restaurant_id: int,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    return hours_service.business_hours_stats(db, caller, restaurant_id)


@router.post("/restaurants/{restaurant_id}/business-hours/defaults")
def initialize_default_hours(
    restaurant_id: int,
    payload: DefaultHoursRequest,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        rows = hours_service.initialize_default_hours(db, caller, payload.revenue_center_ids)
    return [_hours_to_dict(row) for row in rows if row.restaurant_id == restaurant_id]


@router.get("/restaurants/{restaurant_id}/revenue-centers/open")
def list_open_revenue_centers(
    restaurant_id: int,
    at: Optional[datetime] = None,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    centers = hours_service.list_open_revenue_centers(db, caller, restaurant_id, at or utcnow())
    return [{"id": center.id, "name": center.name, "type": center.type} for center in centers]


@router.put("/revenue-centers/{revenue_center_id}/business-hours")
def set_business_hours(
    revenue_center_id: int,
    payload: BusinessHoursReplace,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        rows = hours_service.set_business_hours(
            db, caller, revenue_center_id, [row.model_dump() for row in payload.hours]
        )
    return [_hours_to_dict(row) for row in rows]


@router.post("/revenue-centers/{revenue_center_id}/business-hours/copy")
def copy_business_hours(
    revenue_center_id: int,
    payload: CopyHoursRequest,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        rows = hours_service.copy_business_hours(db, caller, payload.source_revenue_center_id, revenue_center_id)
    return [_hours_to_dict(row) for row in rows]


@router.get("/revenue-centers/{revenue_center_id}/open")
def revenue_center_open(
    revenue_center_id: int,
    at: Optional[datetime] = None,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    moment = at or utcnow()
    return {
        "revenue_center_id": revenue_center_id,
        "at": moment,
        "is_open": hours_service.check_revenue_center_open(db, caller, revenue_center_id, moment),
    }
