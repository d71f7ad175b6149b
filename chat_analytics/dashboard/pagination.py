from dataclasses import dataclass, field
from typing import Any, Dict, List
import math


@dataclass
class Page:
    page: int
    pages: int
    total: int
    rows: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.pages


def paginate(rows: List[Dict[str, Any]], page: int, page_size: int) -> Page:
    """Slice one page, clamping the request into [1, last page]"""
    total = len(rows)
    pages = max(1, math.ceil(total / page_size))
    safe_page = min(max(1, page), pages)
    start = (safe_page - 1) * page_size
    return Page(page=safe_page, pages=pages, total=total, rows=rows[start:start + page_size])


class PaginatedResult:
    """An in-memory result set with a current page"""

    def __init__(self, page_size: int = 10):
        self.page_size = page_size
        self.rows: List[Dict[str, Any]] = []
        self.page = 1

    def replace(self, rows: List[Dict[str, Any]]) -> None:
        self.rows = list(rows)
        self.page = 1

    def go_to(self, page: int) -> Page:
        current = paginate(self.rows, page, self.page_size)
        self.page = current.page
        return current

    def current(self) -> Page:
        return self.go_to(self.page)

    def next(self) -> Page:
        return self.go_to(self.page + 1)

    def previous(self) -> Page:
        return self.go_to(self.page - 1)
