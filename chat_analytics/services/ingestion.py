from datetime import datetime, tzinfo
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from chat_analytics.core.database import storage_errors
from chat_analytics.models.event import Event, MESSAGE_SENT
from chat_analytics.services.partners import PartnerNormalizer

logger = structlog.get_logger()


def to_reporting_time(value: Optional[datetime], tz: tzinfo) -> datetime:
    """Naive datetime in the reporting timezone; naive input is taken as already local"""
    if value is None:
        return datetime.now(tz).replace(tzinfo=None)
    if value.tzinfo is not None:
        return value.astimezone(tz).replace(tzinfo=None)
    return value


class IngestionService:
    """Append-only writer for usage events"""

    def __init__(self, db: AsyncSession, normalizer: PartnerNormalizer, tz: tzinfo):
        self.db = db
        self.normalizer = normalizer
        self.tz = tz

    async def record_message_sent(
            self,
            partner_code: str,
            anonymous_user_id: str,
            session_id: str,
            timestamp: Optional[datetime] = None
    ) -> Event:
        """
        Append one message_sent event.

        Raises:
            StorageError: the store is unreachable or the insert failed
        """
        code, access_type = self.normalizer.resolve(partner_code)

        event = Event(
            event_type=MESSAGE_SENT,
            partner_code=code,
            access_type=access_type,
            anonymous_user_id=anonymous_user_id,
            session_id=session_id,
            timestamp=to_reporting_time(timestamp, self.tz),
        )

        with storage_errors("record_message_sent"):
            try:
                self.db.add(event)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        logger.info(
            "event_recorded",
            event_type=MESSAGE_SENT,
            partner_code=code,
            access_type=access_type,
        )
        return event
