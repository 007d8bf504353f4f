"""
Generic paginated response schema for admin list endpoints.
"""
from __future__ import annotations

import math
from typing import Generic, TypeVar

from pydantic import BaseModel, computed_field

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """Items of one page with total count, page number, page size and page count."""

    items: list[T]
    total: int
    page: int
    limit: int

    @computed_field  # type: ignore[misc]
    @property
    def pages(self) -> int:
        if self.limit == 0:
            return 0
        return math.ceil(self.total / self.limit)
