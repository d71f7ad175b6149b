from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Callable, Dict, List, Optional, Tuple
import csv

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession
import pandas as pd
import structlog

from chat_analytics.core.database import storage_errors
from chat_analytics.models.event import Event
from chat_analytics.schemas.analytics import AnalyticsFilter
from chat_analytics.services.filters import FilterBuilder, event_day
from chat_analytics.services.partners import PartnerNormalizer

logger = structlog.get_logger()

EXPORT_COLUMNS = ["partner", "access_type", "total_users", "message_volume", "last_event"]

GroupKey = Tuple[str, str]


def day_label(day: date) -> str:
    """Short month-day label, e.g. "Oct 5" """
    return f"{day:%b} {day.day}"


class AnalyticsService:
    """Rollups over the chat event log"""

    def __init__(
            self,
            db: AsyncSession,
            normalizer: PartnerNormalizer,
            tz: tzinfo,
            users_limit: int = 200,
            today: Optional[Callable[[], date]] = None
    ):
        self.db = db
        self.normalizer = normalizer
        self.tz = tz
        self.users_limit = users_limit
        self._today = today or (lambda: datetime.now(self.tz).date())

    def anchor_date(self, filters: AnalyticsFilter) -> date:
        """Reference date for DAU/WAU: the report's date_to, else today"""
        return filters.date_to or self._today()

    async def summary(self, filters: AnalyticsFilter) -> Dict[str, Any]:
        """Headline cards over the whole filtered set plus one row per (partner, access_type)"""
        builder = FilterBuilder(filters, self.normalizer)
        anchor = self.anchor_date(filters)
        week_start = anchor - timedelta(days=6)
        group_cols = (Event.partner_code, Event.access_type)

        with storage_errors("summary"):
            totals = (await self.db.execute(
                select(
                    func.count(distinct(Event.anonymous_user_id)),
                    func.count(),
                    func.max(Event.timestamp),
                ).where(*builder.range())
            )).one()
            cards_dau = await self._distinct_users(builder.on_day(anchor))
            cards_wau = await self._distinct_users(builder.between(week_start, anchor))

            grouped = (await self.db.execute(
                select(
                    *group_cols,
                    func.count(distinct(Event.anonymous_user_id)),
                    func.count(),
                    func.max(Event.timestamp).label("last_event"),
                )
                .where(*builder.range())
                .group_by(*group_cols)
                .order_by(func.max(Event.timestamp).desc())
            )).all()
            dau_by_group = await self._distinct_users_by_group(builder.on_day(anchor))
            wau_by_group = await self._distinct_users_by_group(builder.between(week_start, anchor))

        cards = {
            "total_users": totals[0] or 0,
            "message_volume": totals[1] or 0,
            "last_event": totals[2],
            "dau": cards_dau,
            "wau": cards_wau,
        }
        groups = [
            {
                "partner": partner_code,
                "access_type": access_type,
                "total_users": total_users,
                "message_volume": message_volume,
                "last_event": last_event,
                "dau": dau_by_group.get((partner_code, access_type), 0),
                "wau": wau_by_group.get((partner_code, access_type), 0),
            }
            for partner_code, access_type, total_users, message_volume, last_event in grouped
        ]

        logger.info("summary_query", anchor=str(anchor), groups=len(groups))
        return {"cards": cards, "groups": groups}

    async def _distinct_users(self, conditions) -> int:
        result = await self.db.execute(
            select(func.count(distinct(Event.anonymous_user_id))).where(*conditions)
        )
        return result.scalar() or 0

    async def _distinct_users_by_group(self, conditions) -> Dict[GroupKey, int]:
        result = await self.db.execute(
            select(Event.partner_code, Event.access_type, func.count(distinct(Event.anonymous_user_id)))
            .where(*conditions)
            .group_by(Event.partner_code, Event.access_type)
        )
        return {(row[0], row[1]): row[2] for row in result}

    async def timeseries(self, filters: AnalyticsFilter) -> List[Dict[str, Any]]:
        """Messages and distinct users per calendar day, ascending, no gap filling"""
        builder = FilterBuilder(filters, self.normalizer)
        day = event_day.label("day")

        with storage_errors("timeseries"):
            result = await self.db.execute(
                select(day, func.count(), func.count(distinct(Event.anonymous_user_id)))
                .where(*builder.range())
                .group_by(event_day)
                .order_by(event_day)
            )
            rows = result.all()

        logger.info("timeseries_query", days=len(rows))
        return [
            {"day": day_label(row[0]), "messages": row[1], "dau": row[2]}
            for row in rows
        ]

    async def users(self, filters: AnalyticsFilter) -> List[Dict[str, Any]]:
        """Per-user drilldown, most recently active first"""
        builder = FilterBuilder(filters, self.normalizer)
        keys = (Event.anonymous_user_id, Event.partner_code, Event.access_type)

        with storage_errors("users"):
            result = await self.db.execute(
                select(
                    *keys,
                    func.count(),
                    func.min(Event.timestamp),
                    func.max(Event.timestamp),
                    func.count(distinct(event_day)),
                )
                .where(*builder.range())
                .group_by(*keys)
                .order_by(func.max(Event.timestamp).desc())
                .limit(self.users_limit)
            )
            rows = result.all()

        logger.info("users_query", rows=len(rows))
        return [
            {
                "anonymous_user_id": row[0],
                "partner_code": row[1],
                "access_type": row[2],
                "messages_sent": row[3],
                "first_seen": row[4],
                "last_seen": row[5],
                "active_days": row[6],
            }
            for row in rows
        ]

    async def export_csv(self, filters: AnalyticsFilter) -> bytes:
        """Partner x access_type snapshot as CSV, every field quoted"""
        builder = FilterBuilder(filters, self.normalizer)
        group_cols = (Event.partner_code, Event.access_type)

        with storage_errors("export"):
            result = await self.db.execute(
                select(
                    *group_cols,
                    func.count(distinct(Event.anonymous_user_id)),
                    func.count(),
                    func.max(Event.timestamp),
                )
                .where(*builder.range())
                .group_by(*group_cols)
                .order_by(func.max(Event.timestamp).desc())
            )
            rows = result.all()

        df = pd.DataFrame(
            [
                [partner, access_type, total_users, message_volume, format_timestamp(last_event)]
                for partner, access_type, total_users, message_volume, last_event in rows
            ],
            columns=EXPORT_COLUMNS,
        )

        logger.info("export_query", rows=len(df))
        return df.to_csv(index=False, quoting=csv.QUOTE_ALL, lineterminator="\n").encode("utf-8")


def format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return value.replace(microsecond=0).isoformat()
