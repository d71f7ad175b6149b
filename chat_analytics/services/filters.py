from datetime import date
from typing import List

from sqlalchemy import Date, func
from sqlalchemy.sql.elements import ColumnElement

from chat_analytics.models.event import Event, MESSAGE_SENT
from chat_analytics.schemas.analytics import AnalyticsFilter
from chat_analytics.services.partners import PartnerNormalizer

# Calendar date of an event; timestamps are stored in the reporting timezone
event_day = func.date(Event.timestamp, type_=Date)


class FilterBuilder:
    """Turns an AnalyticsFilter into bound, conjunctive SQL predicates"""

    def __init__(self, filters: AnalyticsFilter, normalizer: PartnerNormalizer):
        self.filters = filters
        self.normalizer = normalizer

    def scope(self) -> List[ColumnElement[bool]]:
        """Event type plus partner/access constraints, without any date bound"""
        conditions: List[ColumnElement[bool]] = [Event.event_type == MESSAGE_SENT]

        if self.filters.partner_code:
            conditions.append(Event.partner_code == self.normalizer.normalize(self.filters.partner_code))
        if self.filters.access_type:
            conditions.append(Event.access_type == self.filters.access_type)

        return conditions

    def range(self) -> List[ColumnElement[bool]]:
        """scope() plus the inclusive date_from/date_to bounds"""
        conditions = self.scope()

        if self.filters.date_from:
            conditions.append(event_day >= self.filters.date_from)
        if self.filters.date_to:
            conditions.append(event_day <= self.filters.date_to)

        return conditions

    def on_day(self, day: date) -> List[ColumnElement[bool]]:
        return self.scope() + [event_day == day]

    def between(self, start: date, end: date) -> List[ColumnElement[bool]]:
        return self.scope() + [event_day >= start, event_day <= end]
