#!/usr/bin/env python3
"""
Admin usage report

Prints the dashboard cards and tables from a running API and writes the
DAU / message charts as SVG files.

Usage:
    python scripts/admin_report.py [base_url] [--token TOKEN] [--from YYYY-MM-DD] [--to YYYY-MM-DD]
                                   [--partner CODE] [--access direct|partner] [--out DIR]
"""

import argparse
import asyncio
import sys
from datetime import date
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx

from chat_analytics.dashboard.charts import rasterize_line_chart, render_svg
from chat_analytics.dashboard.client import DashboardClient
from chat_analytics.dashboard.render import (
    SUMMARY_HEADERS,
    USERS_HEADERS,
    format_table,
    render_cards,
    summary_row,
    users_row,
)
from chat_analytics.schemas.analytics import AnalyticsFilter


def parse_args(argv):
    parser = argparse.ArgumentParser(description="Print the admin usage dashboard")
    parser.add_argument("base_url", nargs="?", default="http://localhost:8000")
    parser.add_argument("--token", default=None, help="Admin token")
    parser.add_argument("--from", dest="date_from", type=date.fromisoformat, default=None)
    parser.add_argument("--to", dest="date_to", type=date.fromisoformat, default=None)
    parser.add_argument("--partner", default=None)
    parser.add_argument("--access", default=None)
    parser.add_argument("--out", default=".", help="Directory for chart SVGs")
    return parser.parse_args(argv)


def print_all_pages(title, result, headers, to_row):
    print(f"\n{title}")
    page = result.go_to(1)
    while True:
        print(format_table(headers, [to_row(r) for r in page.rows]))
        print(f"Page {page.page} / {page.pages}")
        if not page.has_next:
            break
        page = result.next()


async def run(args) -> int:
    filters = AnalyticsFilter(
        partner_code=args.partner,
        access_type=args.access,
        date_from=args.date_from,
        date_to=args.date_to,
    )

    async with httpx.AsyncClient(base_url=args.base_url, timeout=30) as http:
        client = DashboardClient(http, token=args.token)
        try:
            await client.fetch(filters)
        except httpx.HTTPError as e:
            print(f"Error: failed to load dashboard data: {e}")
            return 1

    print("=" * 60)
    for name, value in render_cards(client.cards).items():
        print(f"{name:<15} {value:>10}")
    print("=" * 60)

    print_all_pages("User summary", client.summary, SUMMARY_HEADERS, summary_row)
    print_all_pages("Users", client.users, USERS_HEADERS, users_row)

    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)
    for metric in ("dau", "messages"):
        labels, values = client.chart_series(metric)
        path = out_dir / f"chart_{metric}.svg"
        path.write_text(render_svg(rasterize_line_chart(labels, values)), encoding="utf-8")
        print(f"Wrote {path}")

    return 0


def main():
    sys.exit(asyncio.run(run(parse_args(sys.argv[1:]))))


if __name__ == "__main__":
    main()
