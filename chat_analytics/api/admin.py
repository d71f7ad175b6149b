# GET /api/admin/*

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from chat_analytics.core.database import get_db
from chat_analytics.core.errors import ValidationError
from chat_analytics.core.security import require_admin
from chat_analytics.schemas.analytics import (
    AnalyticsFilter,
    SummaryResponse,
    TimeseriesResponse,
    UsersResponse
)
from chat_analytics.services.analytics import AnalyticsService

logger = structlog.get_logger()
router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _parse_date(name: str, value: Optional[str]) -> Optional[date]:
    if not value or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ValidationError(f"'{name}' must be a date (YYYY-MM-DD)") from None


def get_filters(
        partner_code: Optional[str] = Query(default=None, description="Partner code"),
        access_type: Optional[str] = Query(default=None, description="direct or partner"),
        date_from: Optional[str] = Query(default=None, description="Start date (YYYY-MM-DD), inclusive"),
        date_to: Optional[str] = Query(default=None, description="End date (YYYY-MM-DD), inclusive")
) -> AnalyticsFilter:
    """Query string -> filter; blank values mean no constraint"""
    return AnalyticsFilter(
        partner_code=(partner_code or "").strip() or None,
        access_type=(access_type or "").strip() or None,
        date_from=_parse_date("date_from", date_from),
        date_to=_parse_date("date_to", date_to),
    )


def get_analytics_service(request: Request, db: AsyncSession = Depends(get_db)) -> AnalyticsService:
    state = request.app.state
    return AnalyticsService(
        db,
        state.partner_normalizer,
        state.settings.tz,
        users_limit=state.settings.users_limit,
    )


@router.get("/summary", response_model=SummaryResponse)
async def get_summary(
        filters: AnalyticsFilter = Depends(get_filters),
        service: AnalyticsService = Depends(get_analytics_service)
):
    """
    Headline cards and the per-partner breakdown.

    DAU/WAU are anchored to **date_to** (or today when absent).
    """
    result = await service.summary(filters)
    logger.info("summary_query_executed", filters=filters.model_dump(mode="json"))
    return {"ok": True, "filters": filters, "cards": result["cards"], "summary": result["groups"]}


@router.get("/timeseries", response_model=TimeseriesResponse)
async def get_timeseries(
        filters: AnalyticsFilter = Depends(get_filters),
        service: AnalyticsService = Depends(get_analytics_service)
):
    """Messages and distinct users per day"""
    return {"ok": True, "timeseries": await service.timeseries(filters)}


@router.get("/users", response_model=UsersResponse)
async def get_users(
        filters: AnalyticsFilter = Depends(get_filters),
        service: AnalyticsService = Depends(get_analytics_service)
):
    """Most recently active users (capped)"""
    return {"ok": True, "users": await service.users(filters)}


@router.get("/export")
async def export_csv(
        filters: AnalyticsFilter = Depends(get_filters),
        service: AnalyticsService = Depends(get_analytics_service)
):
    """Summary groups as a CSV attachment"""
    content = await service.export_csv(filters)
    logger.info("export_executed", filters=filters.model_dump(mode="json"), size=len(content))
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=usage_summary.csv"},
    )
