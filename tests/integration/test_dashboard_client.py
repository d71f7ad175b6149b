import csv
import io

import httpx
import pytest

from chat_analytics.dashboard.charts import rasterize_line_chart
from chat_analytics.dashboard.client import DashboardClient
from chat_analytics.dashboard.render import summary_row, users_row
from chat_analytics.schemas.analytics import AnalyticsFilter
from conftest import ADMIN_TOKEN, add_events, at


@pytest.mark.asyncio
async def test_fetch_populates_and_paginates(client, session):
    await add_events(session, [(f"user_{i:02d}", "DIRECT", at(1 + i % 5, i % 20)) for i in range(25)])

    dashboard = DashboardClient(client, token=ADMIN_TOKEN, page_size=10)
    await dashboard.fetch(AnalyticsFilter(date_to=at(5).date()))

    assert dashboard.cards["total_users"] == 25
    assert len(dashboard.timeseries) == 5

    assert len(dashboard.users.rows) == 25
    assert len(dashboard.users_page(1).rows) == 10
    assert len(dashboard.users_page(3).rows) == 5
    assert dashboard.users_page(4).page == 3
    assert dashboard.users.page == 3

    assert dashboard.summary_page().rows[0]["partner"] == "DIRECT"
    assert summary_row(dashboard.summary_page().rows[0])[0] == "General"
    assert users_row(dashboard.users_page(1).rows[0])[0].endswith("…")

    # A new fetch resets both result sets to page 1
    dashboard.summary_page(2)
    await dashboard.fetch(AnalyticsFilter(access_type="partner"))
    assert dashboard.users.page == 1
    assert dashboard.summary.page == 1
    assert dashboard.users.rows == []
    assert dashboard.summary_page().pages == 1


@pytest.mark.asyncio
async def test_chart_series(client, session):
    await add_events(session, [
        ("u1", "DIRECT", at(1)),
        ("u2", "DIRECT", at(1)),
        ("u1", "DIRECT", at(2)),
    ])

    dashboard = DashboardClient(client, token=ADMIN_TOKEN)
    await dashboard.fetch()

    labels, values = dashboard.chart_series("dau")
    assert labels == ["Mar 1", "Mar 2"]
    assert values == [2.0, 1.0]

    layout = rasterize_line_chart(*dashboard.chart_series("messages"))
    assert layout.max_value == 2
    assert [text for _, text in layout.x_labels] == ["Mar 1", "Mar 2"]


@pytest.mark.asyncio
async def test_export_csv(client, session):
    await add_events(session, [("u1", "PARTNER_A", at(1))])

    dashboard = DashboardClient(client, token=ADMIN_TOKEN)
    content = await dashboard.export_csv(AnalyticsFilter(partner_code="PARTNER_A"))

    rows = list(csv.reader(io.StringIO(content.decode("utf-8"))))
    assert rows[1][:4] == ["PARTNER_A", "partner", "1", "1"]


@pytest.mark.asyncio
async def test_bad_token_raises(client):
    dashboard = DashboardClient(client, token="wrong")
    with pytest.raises(httpx.HTTPStatusError):
        await dashboard.fetch()


class FailingPath(httpx.AsyncBaseTransport):
    """Answers one path with a 500 and forwards everything else"""

    def __init__(self, inner: httpx.AsyncBaseTransport, path: str):
        self.inner = inner
        self.path = path

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == self.path:
            return httpx.Response(500, json={"ok": False, "error": "Internal server error"})
        return await self.inner.handle_async_request(request)


@pytest.mark.asyncio
@pytest.mark.parametrize("failing", ["/api/admin/timeseries", "/api/admin/users"])
async def test_failed_fetch_keeps_previous_state(app, client, session, failing):
    await add_events(session, [(f"user_{i:02d}", "DIRECT", at(1 + i % 3)) for i in range(15)])

    dashboard = DashboardClient(client, token=ADMIN_TOKEN, page_size=10)
    await dashboard.fetch()
    dashboard.users_page(2)
    before = (dict(dashboard.cards), list(dashboard.summary.rows), list(dashboard.timeseries), list(dashboard.users.rows))

    transport = FailingPath(httpx.ASGITransport(app=app), failing)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as flaky:
        dashboard.http = flaky
        with pytest.raises(httpx.HTTPStatusError):
            await dashboard.fetch(AnalyticsFilter(access_type="partner"))

    assert (dashboard.cards, dashboard.summary.rows, dashboard.timeseries, dashboard.users.rows) == before
    assert dashboard.users.page == 2
