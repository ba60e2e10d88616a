from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from kitchen_pos.core.database import commit_or_rollback, get_db
from kitchen_pos.deps import get_caller
from kitchen_pos.models.restaurant import Restaurant
from kitchen_pos.services import restaurants as restaurant_service
from kitchen_pos.services.access_control import CallerContext

router = APIRouter(prefix="/api/restaurants", tags=["restaurants"])


class RestaurantCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    domain_name: str = Field(min_length=3, max_length=64)
    address: Optional[str] = None
    phone_number: Optional[str] = Field(default=None, max_length=20)
    owner_id: Optional[int] = None


class RestaurantUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    domain_name: Optional[str] = Field(default=None, min_length=3, max_length=64)
    address: Optional[str] = None
    phone_number: Optional[str] = Field(default=None, max_length=20)


class RestaurantStatusUpdate(BaseModel):
    status: str


def _restaurant_to_dict(restaurant: Restaurant) -> dict:
    return {
        "id": restaurant.id,
        "owner_id": restaurant.owner_id,
        "name": restaurant.name,
        "address": restaurant.address,
        "phone_number": restaurant.phone_number,
        "domain_name": restaurant.domain_name,
        "status": restaurant.status,
        "created_at": restaurant.created_at,
    }


@router.get("")
def list_restaurants(caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return [_restaurant_to_dict(r) for r in restaurant_service.list_restaurants(db, caller)]


@router.get("/stats")
def restaurant_stats(caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return restaurant_service.restaurant_stats(db, caller)


@router.get("/domain-availability")
def domain_availability(
    domain: str,
    exclude_id: Optional[int] = None,
    _caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    normalized = restaurant_service.normalize_domain(domain)
    return {
        "domain_name": normalized,
        "available": restaurant_service.is_domain_available(db, normalized, exclude_id),
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def create_restaurant(
    payload: RestaurantCreate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        restaurant = restaurant_service.create_restaurant(db, caller, payload.model_dump())
    db.refresh(restaurant)
    return _restaurant_to_dict(restaurant)


@router.get("/{restaurant_id}")
def get_restaurant(restaurant_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return _restaurant_to_dict(restaurant_service.get_restaurant(db, caller, restaurant_id))


@router.patch("/{restaurant_id}")
def update_restaurant(
    restaurant_id: int,
    payload: RestaurantUpdate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        restaurant = restaurant_service.update_restaurant(
            db, caller, restaurant_id, payload.model_dump(exclude_unset=True)
        )
    db.refresh(restaurant)
    return _restaurant_to_dict(restaurant)


@router.patch("/{restaurant_id}/status")
def update_restaurant_status(
    restaurant_id: int,
    payload: RestaurantStatusUpdate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        restaurant = restaurant_service.update_restaurant_status(db, caller, restaurant_id, payload.status)
    db.refresh(restaurant)
    return _restaurant_to_dict(restaurant)


@router.delete("/{restaurant_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_restaurant(restaurant_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    with commit_or_rollback(db):
        restaurant_service.delete_restaurant(db, caller, restaurant_id)
