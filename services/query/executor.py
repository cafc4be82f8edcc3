"""
Query executor - paged and unpaginated listings over a record store.

Usage:
    executor = QueryExecutor(SqliteRecordStore(db_path))
    page = executor.page(EntityKind.PRODUCT, composite, PageRequest(page=0, size=20))
    everything = executor.all(EntityKind.PRODUCT, composite, [SortKey(ProductField.NAME)])
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Optional, Sequence, TypeVar

from services.query.fields import EntityKind, SortKey
from services.query.predicates import CompositeFilter
from services.query.store import SqliteRecordStore

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class PageRequest:
    """Zero-based page index, page size and ordered sort keys."""

    page: int = 0
    size: int = 10
    sort: tuple = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.page < 0:
            raise ValueError("Page index must not be negative")
        if self.size < 1:
            raise ValueError("Page size must be at least 1")
        object.__setattr__(self, "sort", tuple(self.sort))

    @property
    def offset(self) -> int:
        return self.page * self.size


@dataclass(frozen=True)
class Page(Generic[T]):
    items: list
    page: int
    size: int
    total_elements: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_elements / self.size) if self.size else 0

    @property
    def first(self) -> bool:
        return self.page == 0

    @property
    def last(self) -> bool:
        return self.page >= self.total_pages - 1

    def map(self, fn: Callable[[T], U]) -> "Page[U]":
        return Page([fn(item) for item in self.items], self.page, self.size, self.total_elements)

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": self.items,
            "page": self.page,
            "size": self.size,
            "total_elements": self.total_elements,
            "total_pages": self.total_pages,
            "first": self.first,
            "last": self.last,
        }


class QueryExecutor:
    """
    Evaluate composite filters against one entity kind.

    Ordering is always the declared sort keys followed by id ascending, so
    repeated calls against unmodified data page deterministically.

    Args:
        store: Record store, defaults to the configured SQLite database
    """

    def __init__(self, store: Optional[SqliteRecordStore] = None) -> None:
        self.store = store or SqliteRecordStore()

    def page(
        self,
        kind: EntityKind,
        composite: CompositeFilter,
        page_request: PageRequest,
    ) -> Page[dict]:
        total = self.store.count(kind, composite)
        items = self.store.filter(
            kind,
            composite,
            page_request.sort,
            limit=page_request.size,
            offset=page_request.offset,
        )

        logger.debug(
            "Page query: kind=%s, predicates=%d, page=%d, size=%d, total=%d",
            kind.value, len(composite), page_request.page, page_request.size, total,
        )
        return Page(items, page_request.page, page_request.size, total)

    def all(
        self,
        kind: EntityKind,
        composite: CompositeFilter,
        sort: Sequence[SortKey] = (),
    ) -> list[dict]:
        """
        Every match, ordered, with no page boundary.

        Meant for small result sets; there is no cap.
        """
        items = self.store.filter(kind, composite, sort)
        logger.debug(
            "Unpaginated query: kind=%s, predicates=%d, matches=%d",
            kind.value, len(composite), len(items),
        )
        return items
