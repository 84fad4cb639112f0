"""Dashboard analytics endpoints."""

from fastapi import APIRouter, Depends

from restrona.api.deps import RequestContext, get_context
from restrona.schemas import PlatformAnalyticsResponse, RestaurantAnalyticsResponse

router = APIRouter(tags=["Analytics"])


@router.get(
    "/restaurants/{restaurant_id}/analytics",
    response_model=RestaurantAnalyticsResponse,
    summary="Restaurant Dashboard Stats",
)
async def restaurant_analytics(
    restaurant_id: int,
    ctx: RequestContext = Depends(get_context),
) -> RestaurantAnalyticsResponse:
    summary = await ctx.analytics().restaurant_summary(restaurant_id, ctx.principal)
    return RestaurantAnalyticsResponse.model_validate(summary)


@router.get("/analytics/platform", response_model=PlatformAnalyticsResponse, summary="Platform Stats")
async def platform_analytics(ctx: RequestContext = Depends(get_context)) -> PlatformAnalyticsResponse:
    summary = await ctx.analytics().platform_summary(ctx.principal)
    return PlatformAnalyticsResponse.model_validate(summary)
