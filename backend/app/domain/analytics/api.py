from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.domain.analytics import service
from app.infra.rate_limit import ANALYTICS, rate_limited

router = APIRouter(prefix="/analytics", tags=["analytics"])

_aggregator = service.SearchAnalyticsAggregator()


@router.get("/search", dependencies=[Depends(rate_limited(ANALYTICS))])
async def search_analytics(
    period: Optional[int] = Query(default=None, ge=1, le=365, description="Days of logs to include"),
    type: str = Query(default="overview", description="overview | popular | trends | performance"),
):
    report = await _aggregator.report(type, period)
    return report.model_dump()
