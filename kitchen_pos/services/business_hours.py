from __future__ import annotations

import logging
from datetime import datetime, time
from typing import Iterable
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from kitchen_pos.core.config import BUSINESS_TIMEZONE
from kitchen_pos.core.errors import NotFoundError, ValidationError
from kitchen_pos.models.business_hours import BusinessHours
from kitchen_pos.models.revenue_center import RevenueCenter
from kitchen_pos.services.access_control import CONFIG_ROLES, AuthorizationService, CallerContext

logger = logging.getLogger(__name__)

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
DEFAULT_OPEN_TIME = time(9, 0)
DEFAULT_CLOSE_TIME = time(22, 0)


def day_name(day_of_week: int) -> str:
    if 0 <= day_of_week < len(DAY_NAMES):
        return DAY_NAMES[day_of_week]
    return "Unknown"


def day_of_week(moment: datetime) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return moment.isoweekday() % 7


def to_business_time(moment: datetime, tz_name: str = BUSINESS_TIMEZONE) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(ZoneInfo(tz_name))


def is_open_at(hours: BusinessHours | None, current: time) -> bool:
    if hours is None or hours.is_closed:
        return False
    if hours.open_time is None or hours.close_time is None:
        return False

    # Minute resolution, both bounds inclusive.
    current = current.replace(second=0, microsecond=0)
    open_time = hours.open_time.replace(second=0, microsecond=0)
    close_time = hours.close_time.replace(second=0, microsecond=0)

    if close_time < open_time:
        return current >= open_time or current <= close_time
    return open_time <= current <= close_time


def _hours_for_day(db: Session, revenue_center_id: int, day: int) -> BusinessHours | None:
    return (
        db.query(BusinessHours)
        .filter(BusinessHours.revenue_center_id == revenue_center_id, BusinessHours.day_of_week == day)
        .first()
    )


def is_revenue_center_open(db: Session, revenue_center_id: int, at: datetime) -> bool:
    local = to_business_time(at)
    return is_open_at(_hours_for_day(db, revenue_center_id, day_of_week(local)), local.time())


def _get_center(db: Session, caller: CallerContext, revenue_center_id: int) -> RevenueCenter:
    center = db.query(RevenueCenter).filter(RevenueCenter.id == revenue_center_id).first()
    if center is None:
        raise NotFoundError("Revenue center not found")
    AuthorizationService.ensure_tenant_access(caller, center.restaurant_id)
    return center


def check_revenue_center_open(db: Session, caller: CallerContext, revenue_center_id: int, at: datetime) -> bool:
    _get_center(db, caller, revenue_center_id)
    return is_revenue_center_open(db, revenue_center_id, at)


def list_open_revenue_centers(
    db: Session,
    caller: CallerContext,
    restaurant_id: int,
    at: datetime,
) -> list[RevenueCenter]:
    AuthorizationService.ensure_tenant_access(caller, restaurant_id)
    centers = (
        db.query(RevenueCenter)
        .filter(RevenueCenter.restaurant_id == restaurant_id, RevenueCenter.is_active.is_(True))
        .order_by(RevenueCenter.id)
        .all()
    )
    return [center for center in centers if is_revenue_center_open(db, center.id, at)]


def list_business_hours(
    db: Session,
    caller: CallerContext,
    restaurant_id: int,
    revenue_center_id: int | None = None,
) -> list[BusinessHours]:
    AuthorizationService.ensure_tenant_access(caller, restaurant_id)
    query = db.query(BusinessHours).filter(BusinessHours.restaurant_id == restaurant_id)
    if revenue_center_id is not None:
        query = query.filter(BusinessHours.revenue_center_id == revenue_center_id)
    return query.order_by(BusinessHours.revenue_center_id, BusinessHours.day_of_week).all()


def _validated_rows(rows: Iterable[dict]) -> list[dict]:
    seen: set[int] = set()
    validated = []
    for row in rows:
        day = row.get("day_of_week")
        if day is None or not 0 <= int(day) <= 6:
            raise ValidationError(f"Invalid day_of_week: {day}")
        if int(day) in seen:
            raise ValidationError(f"Duplicate day_of_week: {day}")
        seen.add(int(day))
        is_closed = bool(row.get("is_closed", False))
        open_time = row.get("open_time")
        close_time = row.get("close_time")
        if not is_closed and (open_time is None) != (close_time is None):
            raise ValidationError(f"{day_name(int(day))}: open and close times must be set together")
        validated.append(
            {"day_of_week": int(day), "open_time": open_time, "close_time": close_time, "is_closed": is_closed}
        )
    return validated


def set_business_hours(
    db: Session,
    caller: CallerContext,
    revenue_center_id: int,
    rows: Iterable[dict],
) -> list[BusinessHours]:
    """Replace every row of a revenue center with ``rows``."""
    center = _get_center(db, caller, revenue_center_id)
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, center.restaurant_id)
    validated = _validated_rows(rows)

    db.query(BusinessHours).filter(BusinessHours.revenue_center_id == center.id).delete(synchronize_session=False)
    db.flush()
    created = [
        BusinessHours(restaurant_id=center.restaurant_id, revenue_center_id=center.id, **row) for row in validated
    ]
    db.add_all(created)
    db.flush()
    db.expire(center, ["business_hours"])
    return created


def initialize_default_hours(
    db: Session,
    caller: CallerContext,
    revenue_center_ids: Iterable[int],
) -> list[BusinessHours]:
    created: list[BusinessHours] = []
    for revenue_center_id in revenue_center_ids:
        created.extend(
            set_business_hours(
                db,
                caller,
                revenue_center_id,
                [
                    {
                        "day_of_week": day,
                        "open_time": DEFAULT_OPEN_TIME,
                        "close_time": DEFAULT_CLOSE_TIME,
                        "is_closed": False,
                    }
                    for day in range(7)
                ],
            )
        )
    return created


def copy_business_hours(
    db: Session,
    caller: CallerContext,
    source_revenue_center_id: int,
    target_revenue_center_id: int,
) -> list[BusinessHours]:
    source = _get_center(db, caller, source_revenue_center_id)
    target = _get_center(db, caller, target_revenue_center_id)
    if source.restaurant_id != target.restaurant_id:
        raise ValidationError("Business hours can only be copied within the same restaurant")
    rows = [
        {
            "day_of_week": hours.day_of_week,
            "open_time": hours.open_time,
            "close_time": hours.close_time,
            "is_closed": hours.is_closed,
        }
        for hours in list_business_hours(db, caller, source.restaurant_id, source.id)
    ]
    logger.info("copying %s business hour rows %s -> %s", len(rows), source.id, target.id)
    return set_business_hours(db, caller, target.id, rows)


def business_hours_stats(db: Session, caller: CallerContext, restaurant_id: int) -> dict:
    """Open and closed day counts for the restaurant and per revenue center."""
    AuthorizationService.ensure_tenant_access(caller, restaurant_id)
    rows = (
        db.query(BusinessHours, RevenueCenter.name)
        .join(RevenueCenter, RevenueCenter.id == BusinessHours.revenue_center_id)
        .filter(BusinessHours.restaurant_id == restaurant_id)
    )

    per_center: dict[str, dict[str, int]] = {}
    total = open_days = 0
    for hours, center_name in rows.all():
        total += 1
        bucket = per_center.setdefault(center_name, {"open": 0, "closed": 0})
        if hours.is_closed:
            bucket["closed"] += 1
        else:
            open_days += 1
            bucket["open"] += 1
    return {
        "total_hours": total,
        "open_days": open_days,
        "closed_days": total - open_days,
        "center_stats": per_center,
    }
