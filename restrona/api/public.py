"""
Customer-facing endpoints.

Reached from a table's QR code, which encodes the restaurant and table
ids. No authentication; prices are always taken from the stored menu.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from restrona.api.deps import RequestContext, get_public_context
from restrona.core.config import get_settings
from restrona.core.errors import retry_persistence
from restrona.schemas import (
    ErrorResponse,
    MenuItemResponse,
    OrderCreate,
    OrderCreateResponse,
    PublicMenuResponse,
    PublicRestaurantResponse,
)
from restrona.services.orders import CustomerInfo

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/public/restaurants/{restaurant_id}", tags=["Customer"])


@router.get("/menu", response_model=PublicMenuResponse, summary="Customer Menu")
async def public_menu(
    restaurant_id: int,
    table_id: Optional[int] = Query(None),
    ctx: RequestContext = Depends(get_public_context),
) -> PublicMenuResponse:
    menu = await ctx.menu().public_menu(restaurant_id, table_id=table_id)
    return PublicMenuResponse(
        restaurant=PublicRestaurantResponse.model_validate(menu.restaurant),
        table_id=menu.table.id if menu.table else None,
        table_number=menu.table.table_number if menu.table else None,
        categories=menu.categories,
        items=[MenuItemResponse.model_validate(item) for item in menu.items],
    )


@router.post(
    "/orders",
    response_model=OrderCreateResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Place Order",
)
async def create_order(
    restaurant_id: int,
    payload: OrderCreate,
    ctx: RequestContext = Depends(get_public_context),
) -> OrderCreateResponse:
    """Submit a cart as a new order (status ``pending``)."""
    settings = get_settings()
    engine = ctx.orders()
    logger.info(f"Order submitted for restaurant #{restaurant_id} table={payload.table_id}")

    async def submit():
        return await engine.create_order(
            restaurant_id,
            payload.table_id,
            CustomerInfo(
                name=payload.customer_name,
                phone=payload.customer_phone,
                notes=payload.customer_notes,
            ),
            [(line.menu_item_id, line.quantity) for line in payload.items],
            order_type=payload.order_type,
        )

    receipt = await retry_persistence(
        submit,
        attempts=settings.persistence_max_retries,
        backoff_seconds=settings.persistence_retry_backoff_seconds,
        label="create_order",
    )
    return OrderCreateResponse(
        order_id=receipt.order_id,
        order_number=receipt.order_number,
        total=float(receipt.total),
        status=receipt.status,
    )
