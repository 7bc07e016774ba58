"""
Insights API Endpoints
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from spendlog.api.deps import get_insights_service
from spendlog.core.datetime_utils import month_key
from spendlog.schemas.insights import InsightsResponse
from spendlog.services.insights import InsightsService

router = APIRouter()

@router.get("/", response_model=InsightsResponse)
async def get_insights(
    month: Optional[str] = Query(None, description="YYYY-MM, defaults to the current month"),
    service: InsightsService = Depends(get_insights_service)
):
    """
    Three short spending insights comparing the month with the one before
    """
    month = month or month_key(date.today())
    insights = await service.generate_insights(month)

    return InsightsResponse(month=month, insights=insights)
