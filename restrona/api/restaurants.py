"""Restaurant registry endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from restrona.api.deps import RequestContext, get_context
from restrona.models import RestaurantStatus
from restrona.schemas import (
    DayHours,
    RestaurantCreate,
    RestaurantResponse,
    RestaurantSettingsUpdate,
    RestaurantStatusUpdate,
    RestaurantUpdate,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/restaurants", tags=["Restaurants"])


@router.get("", response_model=list[RestaurantResponse], summary="List Restaurants")
async def list_restaurants(
    status: Optional[RestaurantStatus] = Query(None),
    ctx: RequestContext = Depends(get_context),
) -> list[RestaurantResponse]:
    restaurants = await ctx.restaurants().list_restaurants(ctx.principal, status=status)
    return [RestaurantResponse.model_validate(r) for r in restaurants]


@router.post("", response_model=RestaurantResponse, status_code=201, summary="Create Restaurant")
async def create_restaurant(
    payload: RestaurantCreate,
    ctx: RequestContext = Depends(get_context),
) -> RestaurantResponse:
    data = payload.model_dump(exclude_none=True, exclude={"opening_hours", "settings"})
    if payload.opening_hours:
        data["opening_hours"] = {day: hours.model_dump() for day, hours in payload.opening_hours.items()}
    if payload.settings:
        data["settings"] = payload.settings.model_dump(exclude_none=True)

    restaurant = await ctx.restaurants().create(ctx.principal, **data)
    return RestaurantResponse.model_validate(restaurant)


@router.get("/{restaurant_id}", response_model=RestaurantResponse, summary="Get Restaurant")
async def get_restaurant(
    restaurant_id: int,
    ctx: RequestContext = Depends(get_context),
) -> RestaurantResponse:
    restaurant = await ctx.restaurants().get(restaurant_id, ctx.principal)
    return RestaurantResponse.model_validate(restaurant)


@router.patch("/{restaurant_id}", response_model=RestaurantResponse, summary="Update Profile")
async def update_restaurant(
    restaurant_id: int,
    payload: RestaurantUpdate,
    ctx: RequestContext = Depends(get_context),
) -> RestaurantResponse:
    restaurant = await ctx.restaurants().update_profile(
        restaurant_id, ctx.principal, **payload.model_dump(exclude_unset=True)
    )
    return RestaurantResponse.model_validate(restaurant)


@router.delete("/{restaurant_id}", status_code=204, summary="Delete Restaurant")
async def delete_restaurant(
    restaurant_id: int,
    ctx: RequestContext = Depends(get_context),
) -> None:
    await ctx.restaurants().delete(restaurant_id, ctx.principal)


@router.put("/{restaurant_id}/opening-hours", response_model=RestaurantResponse, summary="Set Opening Hours")
async def update_opening_hours(
    restaurant_id: int,
    payload: dict[str, DayHours],
    ctx: RequestContext = Depends(get_context),
) -> RestaurantResponse:
    hours = {day: value.model_dump() for day, value in payload.items()}
    restaurant = await ctx.restaurants().update_opening_hours(restaurant_id, hours, ctx.principal)
    return RestaurantResponse.model_validate(restaurant)


@router.put("/{restaurant_id}/settings", response_model=RestaurantResponse, summary="Update Settings")
async def update_settings(
    restaurant_id: int,
    payload: RestaurantSettingsUpdate,
    ctx: RequestContext = Depends(get_context),
) -> RestaurantResponse:
    restaurant = await ctx.restaurants().update_settings(
        restaurant_id, payload.model_dump(exclude_none=True), ctx.principal
    )
    return RestaurantResponse.model_validate(restaurant)


@router.put("/{restaurant_id}/status", response_model=RestaurantResponse, summary="Set Restaurant Status")
async def set_restaurant_status(
    restaurant_id: int,
    payload: RestaurantStatusUpdate,
    ctx: RequestContext = Depends(get_context),
) -> RestaurantResponse:
    restaurant = await ctx.restaurants().set_status(restaurant_id, payload.status, ctx.principal)
    return RestaurantResponse.model_validate(restaurant)
