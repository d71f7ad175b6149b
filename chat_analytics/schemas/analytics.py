from pydantic import BaseModel
from datetime import date, datetime
from typing import List, Optional


class AnalyticsFilter(BaseModel):
    """Shared filter for every rollup; None means no constraint"""
    partner_code: Optional[str] = None
    access_type: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


class SummaryCards(BaseModel):
    total_users: int
    message_volume: int
    last_event: Optional[datetime] = None
    dau: int
    wau: int


class SummaryGroup(BaseModel):
    """One (partner, access_type) row of the summary table"""
    partner: str
    access_type: str
    total_users: int
    message_volume: int
    last_event: Optional[datetime] = None
    dau: int
    wau: int


class SummaryResponse(BaseModel):
    ok: bool = True
    filters: AnalyticsFilter
    cards: SummaryCards
    summary: List[SummaryGroup]


class TimeseriesPoint(BaseModel):
    day: str
    messages: int
    dau: int


class TimeseriesResponse(BaseModel):
    ok: bool = True
    timeseries: List[TimeseriesPoint]


class UserActivity(BaseModel):
    anonymous_user_id: str
    partner_code: str
    access_type: str
    messages_sent: int
    first_seen: datetime
    last_seen: datetime
    active_days: int


class UsersResponse(BaseModel):
    ok: bool = True
    users: List[UserActivity]
