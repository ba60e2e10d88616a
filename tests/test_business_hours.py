from datetime import datetime, time, timezone
from types import SimpleNamespace

import pytest

from kitchen_pos.core.errors import AuthorizationError, ValidationError
from kitchen_pos.models.business_hours import BusinessHours
from kitchen_pos.services import business_hours as hours_service
from tests.fixtures_data import build_session_factory, owner_caller, seed_restaurant, staff_caller

MONDAY = 1


def _hours(open_at, close_at, is_closed=False):
    return SimpleNamespace(open_time=open_at, close_time=close_at, is_closed=is_closed)


def test_day_of_week_counts_from_sunday():
    assert hours_service.day_of_week(datetime(2024, 1, 14)) == 0
    assert hours_service.day_of_week(datetime(2024, 1, 15)) == MONDAY
    assert hours_service.day_of_week(datetime(2024, 1, 20)) == 6
    assert hours_service.day_name(MONDAY) == "Monday"


@pytest.mark.parametrize(
    "current,expected",
    [
        (time(23, 30), True),
        (time(10, 0), False),
        (time(2, 0), True),
        (time(2, 0, 59), True),
        (time(2, 1), False),
        (time(22, 0), True),
    ],
)
def test_overnight_window(current, expected):
    assert hours_service.is_open_at(_hours(time(22, 0), time(2, 0)), current) is expected


@pytest.mark.parametrize(
    "current,expected",
    [(time(8, 59), False), (time(9, 0), True), (time(22, 0), True), (time(22, 1), False)],
)
def test_daytime_window_bounds_are_inclusive(current, expected):
    assert hours_service.is_open_at(_hours(time(9, 0), time(22, 0)), current) is expected


def test_closed_or_missing_rows_are_closed():
    assert hours_service.is_open_at(None, time(12, 0)) is False
    assert hours_service.is_open_at(_hours(time(9, 0), time(22, 0), is_closed=True), time(12, 0)) is False
    assert hours_service.is_open_at(_hours(None, None), time(12, 0)) is False


def test_revenue_center_open_check_uses_stored_monday_row():
    db = build_session_factory()()
    seed = seed_restaurant(db)
    hours_service.set_business_hours(
        db,
        owner_caller(seed),
        seed.bar_id,
        [{"day_of_week": MONDAY, "open_time": time(22, 0), "close_time": time(2, 0), "is_closed": False}],
    )
    db.commit()

    def at(hour, minute=0):
        return datetime(2024, 1, 15, hour, minute, tzinfo=timezone.utc)

    assert hours_service.is_revenue_center_open(db, seed.bar_id, at(23, 30)) is True
    assert hours_service.is_revenue_center_open(db, seed.bar_id, at(10, 0)) is False
    assert hours_service.is_revenue_center_open(db, seed.bar_id, at(2, 0)) is True
    # Tuesday has no row.
    assert hours_service.is_revenue_center_open(db, seed.bar_id, datetime(2024, 1, 16, 23, 30)) is False

    open_centers = hours_service.list_open_revenue_centers(db, owner_caller(seed), seed.restaurant_id, at(23, 30))
    assert [center.id for center in open_centers] == [seed.bar_id]


def test_set_business_hours_replaces_rows_and_rejects_duplicates():
    db = build_session_factory()()
    seed = seed_restaurant(db)
    caller = owner_caller(seed)

    hours_service.initialize_default_hours(db, caller, [seed.dining_id])
    db.commit()
    assert db.query(BusinessHours).filter(BusinessHours.revenue_center_id == seed.dining_id).count() == 7

    with pytest.raises(ValidationError):
        hours_service.set_business_hours(
            db,
            caller,
            seed.dining_id,
            [{"day_of_week": 1, "is_closed": True}, {"day_of_week": 1, "is_closed": True}],
        )
    db.rollback()

    with pytest.raises(ValidationError):
        hours_service.set_business_hours(db, caller, seed.dining_id, [{"day_of_week": 7, "is_closed": True}])
    db.rollback()


def test_copy_business_hours_between_centers():
    db = build_session_factory()()
    seed = seed_restaurant(db)
    caller = owner_caller(seed)
    hours_service.initialize_default_hours(db, caller, [seed.dining_id])
    db.commit()

    copied = hours_service.copy_business_hours(db, caller, seed.dining_id, seed.bar_id)
    db.commit()

    assert len(copied) == 7
    assert {row.open_time for row in copied} == {time(9, 0)}


def test_staff_cannot_change_business_hours():
    db = build_session_factory()()
    seed = seed_restaurant(db)

    with pytest.raises(AuthorizationError):
        hours_service.set_business_hours(db, staff_caller(seed, seed.bar_id), seed.bar_id, [])
