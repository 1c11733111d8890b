"""Analytics API routes for the admin and vendor dashboards."""

from fastapi import APIRouter

from src.api.deps import CurrentActor
from src.schemas.order import AnalyticsResponse
from src.services.analytics_service import AnalyticsService

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get(
    "",
    response_model=AnalyticsResponse,
    summary="Dashboard analytics",
    description="Order counts, customers, today's revenue, recent orders and popular menus.",
)
async def get_analytics(actor: CurrentActor) -> AnalyticsResponse:
    """Get the dashboard summary, scoped to the vendor for vendor accounts."""
    service = AnalyticsService()
    summary = await service.get_summary(actor)
    return AnalyticsResponse.model_validate(summary)
