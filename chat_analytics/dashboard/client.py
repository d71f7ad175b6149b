from typing import Any, Dict, List, Optional

import httpx
import structlog

from chat_analytics.core.security import ADMIN_TOKEN_HEADER
from chat_analytics.dashboard.pagination import Page, PaginatedResult
from chat_analytics.schemas.analytics import AnalyticsFilter

logger = structlog.get_logger()

API_BASE = "/api/admin"
PAGE_SIZE = 10


class DashboardClient:
    """
    Admin dashboard state over the reporting API.

    Holds the summary groups and the user drilldown as two independently
    paginated result sets. fetch() replaces both and resets both to page 1,
    or changes nothing if any of its requests fails.
    """

    def __init__(self, http: httpx.AsyncClient, token: Optional[str] = None, page_size: int = PAGE_SIZE):
        self.http = http
        self.token = token
        self.cards: Dict[str, Any] = {}
        self.timeseries: List[Dict[str, Any]] = []
        self.summary = PaginatedResult(page_size)
        self.users = PaginatedResult(page_size)

    def _params(self, filters: AnalyticsFilter) -> Dict[str, str]:
        params = {
            key: str(value)
            for key, value in filters.model_dump(mode="json").items()
            if value not in (None, "")
        }
        if self.token:
            params["token"] = self.token
        return params

    def _headers(self) -> Dict[str, str]:
        return {ADMIN_TOKEN_HEADER: self.token} if self.token else {}

    async def _get(self, path: str, filters: AnalyticsFilter) -> httpx.Response:
        response = await self.http.get(f"{API_BASE}{path}", params=self._params(filters), headers=self._headers())
        response.raise_for_status()
        return response

    async def fetch(self, filters: Optional[AnalyticsFilter] = None) -> None:
        """Load all three views, then replace state. A failed request leaves the previous state intact."""
        filters = filters or AnalyticsFilter()

        summary = (await self._get("/summary", filters)).json()
        timeseries = (await self._get("/timeseries", filters)).json()
        users = (await self._get("/users", filters)).json()

        self.cards = summary.get("cards") or {}
        self.summary.replace(summary.get("summary") or [])
        self.timeseries = timeseries.get("timeseries") or []
        self.users.replace(users.get("users") or [])

        logger.info(
            "dashboard_fetched",
            groups=len(self.summary.rows),
            days=len(self.timeseries),
            users=len(self.users.rows),
        )

    async def export_csv(self, filters: Optional[AnalyticsFilter] = None) -> bytes:
        return (await self._get("/export", filters or AnalyticsFilter())).content

    def summary_page(self, page: Optional[int] = None) -> Page:
        return self.summary.current() if page is None else self.summary.go_to(page)

    def users_page(self, page: Optional[int] = None) -> Page:
        return self.users.current() if page is None else self.users.go_to(page)

    def chart_series(self, metric: str) -> tuple[List[str], List[float]]:
        """(labels, values) for "dau" or "messages" """
        labels = [row.get("day", "") for row in self.timeseries]
        values = [float(row.get(metric) or 0) for row in self.timeseries]
        return labels, values
