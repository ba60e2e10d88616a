from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from kitchen_pos.core.database import commit_or_rollback, get_db
from kitchen_pos.deps import get_caller
from kitchen_pos.models.combo_meal import ComboMeal
from kitchen_pos.models.daily_deal import DailyDeal
from kitchen_pos.models.menu_category import MenuCategory
from kitchen_pos.models.menu_item import MenuItem
from kitchen_pos.services import menu as menu_service
from kitchen_pos.services.access_control import CallerContext
from kitchen_pos.services.money import to_money

router = APIRouter(prefix="/api", tags=["menu"])


class CategoryPayload(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    revenue_center_id: Optional[int] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None


class MenuItemPayload(BaseModel):
    category_id: Optional[int] = None
    name: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    price: Optional[Decimal] = None
    image_url: Optional[str] = None
    is_available: Optional[bool] = None
    allergen_info: Optional[str] = None
    preparation_time: Optional[int] = Field(default=None, ge=0)
    sort_order: Optional[int] = None


class ComboPayload(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    price: Optional[Decimal] = None
    image_url: Optional[str] = None
    items: Optional[List[int]] = None
    is_available: Optional[bool] = None


class DealPayload(BaseModel):
    title: Optional[str] = Field(default=None, max_length=160)
    description: Optional[str] = None
    discount_percentage: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None
    applicable_items: Optional[List[int]] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: Optional[bool] = None


def _category_to_dict(category: MenuCategory) -> dict:
    return {
        "id": category.id,
        "restaurant_id": category.restaurant_id,
        "revenue_center_id": category.revenue_center_id,
        "name": category.name,
        "description": category.description,
        "is_active": bool(category.is_active),
        "sort_order": category.sort_order,
    }


def _item_to_dict(item: MenuItem) -> dict:
    return {
        "id": item.id,
        "restaurant_id": item.restaurant_id,
        "category_id": item.category_id,
        "name": item.name,
        "description": item.description,
        "price": str(to_money(item.price)),
        "image_url": item.image_url,
        "is_available": bool(item.is_available),
        "allergen_info": item.allergen_info,
        "preparation_time": item.preparation_time,
        "sort_order": item.sort_order,
    }


def _combo_to_dict(combo: ComboMeal) -> dict:
    return {
        "id": combo.id,
        "restaurant_id": combo.restaurant_id,
        "name": combo.name,
        "description": combo.description,
        "price": str(to_money(combo.price)),
        "image_url": combo.image_url,
        "items": list(combo.items or []),
        "is_available": bool(combo.is_available),
    }


def _optional_money(value) -> Optional[str]:
    return None if value is None else str(to_money(value))


def _deal_to_dict(deal: DailyDeal) -> dict:
    return {
        "id": deal.id,
        "restaurant_id": deal.restaurant_id,
        "title": deal.title,
        "description": deal.description,
        "discount_percentage": _optional_money(deal.discount_percentage),
        "discount_amount": _optional_money(deal.discount_amount),
        "applicable_items": list(deal.applicable_items or []),
        "valid_from": deal.valid_from,
        "valid_until": deal.valid_until,
        "is_active": bool(deal.is_active),
    }


# Categories

@router.get("/restaurants/{restaurant_id}/menu/categories")
def list_categories(
    restaurant_id: int,
    revenue_center_id: Optional[int] = None,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    categories = menu_service.list_categories(db, caller, restaurant_id, revenue_center_id)
    return [_category_to_dict(category) for category in categories]


@router.post("/restaurants/{restaurant_id}/menu/categories", status_code=status.HTTP_201_CREATED)
def create_category(
    restaurant_id: int,
    payload: CategoryPayload,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        category = menu_service.create_category(db, caller, restaurant_id, payload.model_dump(exclude_unset=True))
    db.refresh(category)
    return _category_to_dict(category)


@router.patch("/menu/categories/{category_id}")
def update_category(
    category_id: int,
    payload: CategoryPayload,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        category = menu_service.update_category(db, caller, category_id, payload.model_dump(exclude_unset=True))
    db.refresh(category)
    return _category_to_dict(category)


@router.delete("/menu/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_category(category_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    with commit_or_rollback(db):
        menu_service.delete_category(db, caller, category_id)


# Items

@router.get("/restaurants/{restaurant_id}/menu/items")
def list_items(
    restaurant_id: int,
    category_id: Optional[int] = None,
    revenue_center_id: Optional[int] = None,
    available_only: bool = False,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    items = menu_service.list_items(
        db,
        caller,
        restaurant_id,
        category_id=category_id,
        revenue_center_id=revenue_center_id,
        available_only=available_only,
    )
    return [_item_to_dict(item) for item in items]


@router.post("/restaurants/{restaurant_id}/menu/items", status_code=status.HTTP_201_CREATED)
def create_item(
    restaurant_id: int,
    payload: MenuItemPayload,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        item = menu_service.create_item(db, caller, restaurant_id, payload.model_dump(exclude_unset=True))
    db.refresh(item)
    return _item_to_dict(item)


@router.get("/menu/items/{item_id}")
def get_item(item_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return _item_to_dict(menu_service.get_item(db, caller, item_id))


@router.patch("/menu/items/{item_id}")
def update_item(
    item_id: int,
    payload: MenuItemPayload,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        item = menu_service.update_item(db, caller, item_id, payload.model_dump(exclude_unset=True))
    db.refresh(item)
    return _item_to_dict(item)


@router.delete("/menu/items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_item(item_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    with commit_or_rollback(db):
        menu_service.delete_item(db, caller, item_id)


# Combos

@router.get("/restaurants/{restaurant_id}/menu/combos")
def list_combos(
    restaurant_id: int,
    available_only: bool = False,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    return [_combo_to_dict(c) for c in menu_service.list_combos(db, caller, restaurant_id, available_only)]


@router.post("/restaurants/{restaurant_id}/menu/combos", status_code=status.HTTP_201_CREATED)
def create_combo(
    restaurant_id: int,
    payload: ComboPayload,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        combo = menu_service.create_combo(db, caller, restaurant_id, payload.model_dump(exclude_unset=True))
    db.refresh(combo)
    return _combo_to_dict(combo)


@router.get("/menu/combos/{combo_id}")
def get_combo(combo_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return _combo_to_dict(menu_service.get_combo(db, caller, combo_id))


@router.patch("/menu/combos/{combo_id}")
def update_combo(
    combo_id: int,
    payload: ComboPayload,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        combo = menu_service.update_combo(db, caller, combo_id, payload.model_dump(exclude_unset=True))
    db.refresh(combo)
    return _combo_to_dict(combo)


@router.delete("/menu/combos/{combo_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_combo(combo_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    with commit_or_rollback(db):
        menu_service.delete_combo(db, caller, combo_id)


# Daily deals

@router.get("/restaurants/{restaurant_id}/menu/deals")
def list_deals(restaurant_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return [_deal_to_dict(d) for d in menu_service.list_deals(db, caller, restaurant_id)]


@router.get("/restaurants/{restaurant_id}/menu/deals/active")
def list_active_deals(
    restaurant_id: int,
    at: Optional[datetime] = None,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    return [_deal_to_dict(d) for d in menu_service.list_active_deals(db, caller, restaurant_id, at)]


@router.post("/restaurants/{restaurant_id}/menu/deals", status_code=status.HTTP_201_CREATED)
def create_deal(
    restaurant_id: int,
    payload: DealPayload,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        deal = menu_service.create_deal(db, caller, restaurant_id, payload.model_dump(exclude_unset=True))
    db.refresh(deal)
    return _deal_to_dict(deal)


@router.get("/menu/deals/{deal_id}")
def get_deal(deal_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return _deal_to_dict(menu_service.get_deal(db, caller, deal_id))


@router.patch("/menu/deals/{deal_id}")
def update_deal(
    deal_id: int,
    payload: DealPayload,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        deal = menu_service.update_deal(db, caller, deal_id, payload.model_dump(exclude_unset=True))
    db.refresh(deal)
    return _deal_to_dict(deal)


@router.delete("/menu/deals/{deal_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_deal(deal_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    with commit_or_rollback(db):
        menu_service.delete_deal(db, caller, deal_id)


@router.get("/restaurants/{restaurant_id}/menu/stats")
def menu_stats(restaurant_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return menu_service.menu_stats(db, caller, restaurant_id)
