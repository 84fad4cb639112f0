"""
Staff order endpoints.

Status changes go through ``POST /orders/{id}/status`` with the target
status and, optionally, the status the client last displayed. A 409 means
the order moved on in the meantime; the client should re-read it.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from restrona.api.deps import RequestContext, get_context
from restrona.schemas import (
    CancelRequest,
    ErrorResponse,
    OrderListResponse,
    OrderResponse,
    StatusChangeResponse,
    StatusUpdateRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Orders"])

ERROR_RESPONSES = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


@router.get(
    "/restaurants/{restaurant_id}/orders",
    response_model=OrderListResponse,
    summary="List Orders",
)
async def list_orders(
    restaurant_id: int,
    status: Optional[List[str]] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    ctx: RequestContext = Depends(get_context),
) -> OrderListResponse:
    """Orders of a restaurant, newest first; repeat ``status`` to filter by several."""
    total, orders = await ctx.orders().list_orders(
        restaurant_id, ctx.principal, statuses=status, limit=limit, offset=skip
    )
    return OrderListResponse(total=total, orders=[OrderResponse.from_order(o) for o in orders])


@router.get("/orders/{order_id}", response_model=OrderResponse, responses=ERROR_RESPONSES, summary="Get Order")
async def get_order(
    order_id: int,
    ctx: RequestContext = Depends(get_context),
) -> OrderResponse:
    order = await ctx.orders().get_order(order_id, ctx.principal)
    return OrderResponse.from_order(order)


@router.post(
    "/orders/{order_id}/status",
    response_model=StatusChangeResponse,
    responses=ERROR_RESPONSES,
    summary="Advance Order Status",
)
async def advance_order_status(
    order_id: int,
    payload: StatusUpdateRequest,
    ctx: RequestContext = Depends(get_context),
) -> StatusChangeResponse:
    change = await ctx.orders().advance_status(
        order_id, payload.status, ctx.principal, expected_status=payload.expected_status
    )
    return StatusChangeResponse(
        order_id=change.order_id,
        status=change.status,
        updated_at=change.updated_at,
        changed=change.changed,
    )


@router.post(
    "/orders/{order_id}/cancel",
    response_model=StatusChangeResponse,
    responses=ERROR_RESPONSES,
    summary="Cancel Order",
)
async def cancel_order(
    order_id: int,
    payload: Optional[CancelRequest] = None,
    ctx: RequestContext = Depends(get_context),
) -> StatusChangeResponse:
    expected = payload.expected_status if payload else None
    change = await ctx.orders().cancel_order(order_id, ctx.principal, expected_status=expected)
    return StatusChangeResponse(
        order_id=change.order_id,
        status=change.status,
        updated_at=change.updated_at,
        changed=change.changed,
    )
