import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Query

from lab_ledger.schemas.analytics import AnalyticsResponse
from lab_ledger.services.analytics_service import AnalyticsService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Analytics"])


@router.get("", response_model=AnalyticsResponse, summary="Revenue and collection analytics")
async def get_analytics(
    range_name: Optional[str] = Query("today", alias="range", description="today, 7days or 30days"),
    on_date: Optional[date] = Query(None, alias="date"),
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
):
    start, end = AnalyticsService.resolve_range(range_name, on_date=on_date, from_date=from_date, to_date=to_date)
    return await AnalyticsService.aggregate_window(start, end)
