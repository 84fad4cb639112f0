"""Table management endpoints (staff)."""

from fastapi import APIRouter, Depends

from restrona.api.deps import RequestContext, get_context
from restrona.schemas import TableCreate, TableResponse, TableStatusUpdate, TableUpdate

router = APIRouter(prefix="/restaurants/{restaurant_id}/tables", tags=["Tables"])


@router.get("", response_model=list[TableResponse], summary="List Tables")
async def list_tables(
    restaurant_id: int,
    ctx: RequestContext = Depends(get_context),
) -> list[TableResponse]:
    tables = await ctx.tables().list_tables(restaurant_id, ctx.principal)
    return [TableResponse.model_validate(t) for t in tables]


@router.post("", response_model=TableResponse, status_code=201, summary="Add Table")
async def create_table(
    restaurant_id: int,
    payload: TableCreate,
    ctx: RequestContext = Depends(get_context),
) -> TableResponse:
    data = payload.model_dump(exclude_none=True)
    table = await ctx.tables().create_table(
        restaurant_id,
        ctx.principal,
        table_number=data.pop("table_number"),
        capacity=data.pop("capacity"),
        **data,
    )
    return TableResponse.model_validate(table)


@router.patch("/{table_id}", response_model=TableResponse, summary="Update Table")
async def update_table(
    restaurant_id: int,
    table_id: int,
    payload: TableUpdate,
    ctx: RequestContext = Depends(get_context),
) -> TableResponse:
    table = await ctx.tables().update_table(
        restaurant_id, table_id, ctx.principal, **payload.model_dump(exclude_unset=True)
    )
    return TableResponse.model_validate(table)


@router.put("/{table_id}/status", response_model=TableResponse, summary="Set Table Status")
async def set_table_status(
    restaurant_id: int,
    table_id: int,
    payload: TableStatusUpdate,
    ctx: RequestContext = Depends(get_context),
) -> TableResponse:
    table = await ctx.tables().set_status(restaurant_id, table_id, payload.status, ctx.principal)
    return TableResponse.model_validate(table)


@router.delete("/{table_id}", status_code=204, summary="Delete Table")
async def delete_table(
    restaurant_id: int,
    table_id: int,
    ctx: RequestContext = Depends(get_context),
) -> None:
    await ctx.tables().delete_table(restaurant_id, table_id, ctx.principal)
