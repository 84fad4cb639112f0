"""Staff account endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from restrona.api.deps import RequestContext, get_context
from restrona.schemas import PasswordUpdate, UserCreate, UserListResponse, UserResponse, UserUpdate

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/users", tags=["Users"])


@router.get("", response_model=UserListResponse, summary="List Staff")
async def list_users(
    restaurant_id: Optional[int] = Query(None),
    ctx: RequestContext = Depends(get_context),
) -> UserListResponse:
    users = await ctx.staff().list_staff(ctx.principal, restaurant_id=restaurant_id)
    return UserListResponse(total=len(users), users=[UserResponse.model_validate(u) for u in users])


@router.post("", response_model=UserResponse, status_code=201, summary="Create Staff Account")
async def create_user(
    payload: UserCreate,
    ctx: RequestContext = Depends(get_context),
) -> UserResponse:
    """
    Super admins create restaurant admins and waiters; restaurant admins
    create waiters for their own restaurant.
    """
    restaurant_id = payload.restaurant_id
    if restaurant_id is None and not ctx.principal.has_global_access:
        restaurant_id = ctx.principal.restaurant_id

    user = await ctx.staff().create_staff(
        ctx.principal,
        email=payload.email,
        password=payload.password,
        name=payload.name,
        role=payload.role,
        restaurant_id=restaurant_id,
        phone=payload.phone,
        permissions=payload.permissions,
        otp_code=payload.otp_code,
    )
    return UserResponse.model_validate(user)


@router.patch("/{user_id}", response_model=UserResponse, summary="Update Staff Account")
async def update_user(
    user_id: str,
    payload: UserUpdate,
    ctx: RequestContext = Depends(get_context),
) -> UserResponse:
    staff = ctx.staff()
    changes = payload.model_dump(exclude_unset=True)
    is_active = changes.pop("is_active", None)

    user = None
    if changes:
        user = await staff.update_staff(user_id, ctx.principal, **changes)
    if is_active is not None:
        user = await staff.set_active(user_id, is_active, ctx.principal)
    if user is None:
        user = await staff.get_user(user_id, ctx.principal)
    return UserResponse.model_validate(user)


@router.put("/{user_id}/password", response_model=UserResponse, summary="Change Password")
async def update_password(
    user_id: str,
    payload: PasswordUpdate,
    ctx: RequestContext = Depends(get_context),
) -> UserResponse:
    user = await ctx.staff().update_password(user_id, payload.new_password, ctx.principal)
    return UserResponse.model_validate(user)


@router.delete("/{user_id}", status_code=204, summary="Delete Staff Account")
async def delete_user(
    user_id: str,
    ctx: RequestContext = Depends(get_context),
) -> None:
    await ctx.staff().delete_staff(user_id, ctx.principal)
