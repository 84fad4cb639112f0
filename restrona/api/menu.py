"""Menu management endpoints (staff)."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from restrona.api.deps import RequestContext, get_context
from restrona.schemas import AvailabilityUpdate, MenuItemCreate, MenuItemResponse, MenuItemUpdate

router = APIRouter(prefix="/restaurants/{restaurant_id}/menu", tags=["Menu"])


@router.get("", response_model=list[MenuItemResponse], summary="List Menu Items")
async def list_menu_items(
    restaurant_id: int,
    category: Optional[str] = Query(None),
    ctx: RequestContext = Depends(get_context),
) -> list[MenuItemResponse]:
    items = await ctx.menu().list_items(restaurant_id, ctx.principal, category=category)
    return [MenuItemResponse.model_validate(item) for item in items]


@router.post("", response_model=MenuItemResponse, status_code=201, summary="Add Menu Item")
async def create_menu_item(
    restaurant_id: int,
    payload: MenuItemCreate,
    ctx: RequestContext = Depends(get_context),
) -> MenuItemResponse:
    data = payload.model_dump()
    item = await ctx.menu().create_item(
        restaurant_id,
        ctx.principal,
        name=data.pop("name"),
        price=data.pop("price"),
        **data,
    )
    return MenuItemResponse.model_validate(item)


@router.patch("/{item_id}", response_model=MenuItemResponse, summary="Update Menu Item")
async def update_menu_item(
    restaurant_id: int,
    item_id: int,
    payload: MenuItemUpdate,
    ctx: RequestContext = Depends(get_context),
) -> MenuItemResponse:
    item = await ctx.menu().update_item(
        restaurant_id, item_id, ctx.principal, **payload.model_dump(exclude_unset=True)
    )
    return MenuItemResponse.model_validate(item)


@router.put("/{item_id}/availability", response_model=MenuItemResponse, summary="Set Availability")
async def set_availability(
    restaurant_id: int,
    item_id: int,
    payload: AvailabilityUpdate,
    ctx: RequestContext = Depends(get_context),
) -> MenuItemResponse:
    item = await ctx.menu().set_availability(restaurant_id, item_id, payload.is_available, ctx.principal)
    return MenuItemResponse.model_validate(item)


@router.delete("/{item_id}", status_code=204, summary="Delete Menu Item")
async def delete_menu_item(
    restaurant_id: int,
    item_id: int,
    ctx: RequestContext = Depends(get_context),
) -> None:
    await ctx.menu().delete_item(restaurant_id, item_id, ctx.principal)
