"""Sign-in, profile and phone verification endpoints."""

import logging

from fastapi import APIRouter, Depends

from restrona.api.deps import RequestContext, get_context, get_public_context
from restrona.schemas import (
    LoginRequest,
    LoginResponse,
    OtpSendRequest,
    OtpSendResponse,
    OtpVerifyRequest,
    OtpVerifyResponse,
    ProfileResponse,
    UserResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/login", response_model=LoginResponse, summary="Staff Sign-in")
async def login(
    payload: LoginRequest,
    ctx: RequestContext = Depends(get_public_context),
) -> LoginResponse:
    """Exchange email + password for an access token and the caller's capabilities."""
    result = await ctx.staff().authenticate(payload.email, payload.password)
    return LoginResponse(
        access_token=result.access_token,
        token_type=result.token_type,
        expires_in=result.expires_in,
        user=UserResponse.model_validate(result.user),
        capabilities=result.capabilities,
    )


@router.get("/me", response_model=ProfileResponse, summary="Current Profile")
async def me(ctx: RequestContext = Depends(get_context)) -> ProfileResponse:
    user = await ctx.staff().get_user(ctx.principal.user_id, ctx.principal)
    return ProfileResponse(
        user=UserResponse.model_validate(user),
        capabilities=ctx.gate.capabilities(ctx.principal),
    )


@router.post("/otp/send", response_model=OtpSendResponse, summary="Send Verification Code")
async def send_otp(
    payload: OtpSendRequest,
    ctx: RequestContext = Depends(get_public_context),
) -> OtpSendResponse:
    dispatch = await ctx.otp().send_code(payload.phone)
    return OtpSendResponse(phone=dispatch.phone, expires_at=dispatch.expires_at, code=dispatch.code)


@router.post("/otp/verify", response_model=OtpVerifyResponse, summary="Verify Code")
async def verify_otp(
    payload: OtpVerifyRequest,
    ctx: RequestContext = Depends(get_public_context),
) -> OtpVerifyResponse:
    verified = await ctx.otp().verify_code(payload.phone, payload.code)
    return OtpVerifyResponse(verified=verified)
