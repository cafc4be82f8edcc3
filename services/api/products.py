"""
Product listings.
"""

import logging
from typing import Optional
from zoneinfo import ZoneInfo

from services.api.common import parse_sort, to_page_request
from services.query.executor import Page, QueryExecutor
from services.query.fields import EntityKind, ProductField
from services.query.predicates import CompositeFilter, PredicateCompiler
from utils.config import settings
from utils.dates import resolve_timezone
from utils.schemas import ListingParams, ProductFilter, ProductRecord

logger = logging.getLogger(__name__)


def build_product_filter(criteria: ProductFilter, tz: Optional[ZoneInfo] = None) -> CompositeFilter:
    return (
        PredicateCompiler(tz=tz or resolve_timezone(None))
        .add_contains(ProductField.NAME, criteria.name)
        .add_contains(ProductField.DESCRIPTION, criteria.description)
        .add_contains(ProductField.SKU, criteria.sku)
        .add_contains(ProductField.CATEGORY, criteria.category)
        .add_in(ProductField.CATEGORY, criteria.categories)
        .add_equals(ProductField.ACTIVE, criteria.active)
        .add_between(ProductField.PRICE, criteria.price_from, criteria.price_to)
        .add_between(ProductField.QUANTITY, criteria.quantity_from, criteria.quantity_to)
        .add_between(ProductField.CREATED_AT, criteria.created_at_from, criteria.created_at_to)
        .add_between(ProductField.UPDATED_AT, criteria.updated_at_from, criteria.updated_at_to)
        .build()
    )


class ProductService:
    """Filtered product listings."""

    def __init__(self, executor: Optional[QueryExecutor] = None) -> None:
        self.executor = executor or QueryExecutor()

    def list_products(
        self,
        criteria: ProductFilter,
        params: Optional[ListingParams] = None,
        timezone_name: Optional[str] = None,
    ) -> Page[ProductRecord]:
        logger.debug("Fetching products with filter: %s", criteria.model_dump(exclude_none=True))
        composite = build_product_filter(criteria, resolve_timezone(timezone_name))
        page = self.executor.page(EntityKind.PRODUCT, composite, to_page_request(ProductField, params))
        return page.map(ProductRecord.model_validate)

    def list_all_products(
        self,
        criteria: ProductFilter,
        sort: Optional[list[str]] = None,
        timezone_name: Optional[str] = None,
    ) -> list[ProductRecord]:
        """Every matching product, unpaginated. Use with small result sets."""
        logger.debug("Fetching ALL products (unpaginated) with filter: %s", criteria.model_dump(exclude_none=True))
        composite = build_product_filter(criteria, resolve_timezone(timezone_name))
        rows = self.executor.all(EntityKind.PRODUCT, composite, parse_sort(ProductField, sort))
        return [ProductRecord.model_validate(row) for row in rows]

    def low_stock_products(self, threshold: Optional[int] = None) -> list[ProductRecord]:
        """Active products whose quantity is below the threshold."""
        threshold = settings.LOW_STOCK_THRESHOLD if threshold is None else threshold
        logger.debug("Fetching low stock products with threshold: %d", threshold)

        composite = (
            PredicateCompiler()
            .add_between(ProductField.QUANTITY, None, threshold - 1)
            .add_equals(ProductField.ACTIVE, True)
            .build()
        )
        rows = self.executor.all(EntityKind.PRODUCT, composite, parse_sort(ProductField, ["quantity"]))
        return [ProductRecord.model_validate(row) for row in rows]

