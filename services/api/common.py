"""
Helpers shared by the listing services: sort parsing and page requests.
"""

from enum import Enum
from typing import Iterable, Optional, Type

from services.query.executor import PageRequest
from services.query.fields import SortDirection, SortKey
from utils.schemas import ListingParams


def parse_sort(fields: Type[Enum], raw: Optional[Iterable[str]]) -> tuple:
    """
    Parse "field" / "field,direction" strings into typed sort keys.

    Raises:
        ValueError: If a field or direction is unknown
    """
    keys = []
    for entry in raw or ():
        name, _, direction = entry.partition(",")
        name = name.strip()
        if not name:
            continue
        try:
            key = fields(name)
        except ValueError:
            raise ValueError(f"Unknown sort field: {name}") from None
        try:
            order = SortDirection(direction.strip().lower() or "asc")
        except ValueError:
            raise ValueError(f"Unknown sort direction: {direction}") from None
        keys.append(SortKey(key, order))
    return tuple(keys)


def to_page_request(fields: Type[Enum], params: Optional[ListingParams] = None) -> PageRequest:
    params = params or ListingParams()
    return PageRequest(page=params.page, size=params.size, sort=parse_sort(fields, params.sort))
