"""
core/pagination.py -- Page/limit arithmetic shared by every list endpoint.

Callers never trust raw query values: page is clamped to 1..MAX_PAGE and limit is
clamped to 1..MAX_LIMIT before any offset is computed.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

DEFAULT_LIMIT = 10
MAX_LIMIT = 100
# Keeps offset within what SQLite can bind as a 64-bit integer.
MAX_PAGE = 1_000_000


@dataclass(frozen=True)
class PageParams:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_params(page: int | None = None, limit: int | None = None) -> PageParams:
    """Normalize raw page/limit values into a safe PageParams."""
    page_num = min(MAX_PAGE, max(1, page or 1))
    limit_num = min(MAX_LIMIT, max(1, limit or DEFAULT_LIMIT))
    return PageParams(page=page_num, limit=limit_num)


@dataclass(frozen=True)
class Page:
    """One page of results plus the totals needed to render pagination."""

    items: list
    total: int
    params: PageParams

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.params.limit) if self.total else 0

    @property
    def has_next_page(self) -> bool:
        return self.params.page < self.total_pages

    @property
    def has_previous_page(self) -> bool:
        return self.params.page > 1
