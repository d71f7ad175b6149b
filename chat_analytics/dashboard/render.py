# Table presentation for the admin dashboard

from datetime import datetime
from typing import Any, Dict, List, Optional

from chat_analytics.models.event import DIRECT

PLACEHOLDER = "—"
SUMMARY_HEADERS = ["Partner", "Access", "Total users", "DAU", "WAU", "Messages", "Last event"]
USERS_HEADERS = ["User", "Partner", "Access", "Messages", "First seen", "Last seen", "Active days"]


def map_access_label(access_type: Optional[str]) -> str:
    if access_type == "direct":
        return "General"
    if access_type == "partner":
        return "Partner"
    return access_type or PLACEHOLDER


def map_code_label(code: Optional[str]) -> str:
    if not code or code == DIRECT:
        return "General"
    return code


def mask_user_id(anonymous_user_id: Optional[str]) -> str:
    return str(anonymous_user_id or "")[:10] + "…"


def format_when(value: Any) -> str:
    if not value:
        return PLACEHOLDER
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return value.strftime("%Y-%m-%d %H:%M")


def render_cards(cards: Dict[str, Any]) -> Dict[str, str]:
    return {
        "Total users": str(cards.get("total_users", PLACEHOLDER)),
        "DAU": str(cards.get("dau", PLACEHOLDER)),
        "WAU": str(cards.get("wau", PLACEHOLDER)),
        "Messages": str(cards.get("message_volume", PLACEHOLDER)),
    }


def summary_row(row: Dict[str, Any]) -> List[str]:
    return [
        map_code_label(row.get("partner")),
        map_access_label(row.get("access_type")),
        str(int(row.get("total_users") or 0)),
        str(int(row.get("dau") or 0)),
        str(int(row.get("wau") or 0)),
        str(int(row.get("message_volume") or 0)),
        format_when(row.get("last_event")),
    ]


def users_row(row: Dict[str, Any]) -> List[str]:
    return [
        mask_user_id(row.get("anonymous_user_id")),
        map_code_label(row.get("partner_code") or DIRECT),
        map_access_label(row.get("access_type") or "direct"),
        str(int(row.get("messages_sent") or 0)),
        format_when(row.get("first_seen")),
        format_when(row.get("last_seen")),
        str(int(row.get("active_days") or 0)),
    ]


def format_table(headers: List[str], rows: List[List[str]]) -> str:
    """Plain-text table with left-aligned columns"""
    widths = [len(h) for h in headers]
    for row in rows:
        widths = [max(w, len(cell)) for w, cell in zip(widths, row)]

    def line(cells: List[str]) -> str:
        return "  ".join(cell.ljust(w) for cell, w in zip(cells, widths)).rstrip()

    out = [line(headers), line(["-" * w for w in widths])]
    out.extend(line(row) for row in rows)
    return "\n".join(out)
