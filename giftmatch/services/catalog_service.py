"""Catalog reads: keyword search, lookups and product facets."""

import logging
from typing import Callable

from sqlalchemy import exists, func, select
from sqlalchemy.orm import Session

from giftmatch.models.database import Category, Product as ProductRow, ProductFacet
from giftmatch.models.domain import Facet, FacetFilter, FacetSource, Product, SearchQuery

logger = logging.getLogger(__name__)

MAX_SEARCH_LIMIT = 50
_FACET_SOURCES = {source.value for source in FacetSource}


def to_product(row: ProductRow) -> Product:
    """Convert an ORM row to the immutable domain Product."""
    return Product(
        id=str(row.id),
        title=row.title,
        description=row.description,
        vendor=row.vendor.name if row.vendor else None,
        category=row.category.name if row.category else None,
        price=float(row.price or 0),
        currency=row.currency or "USD",
        available=bool(row.available),
        image_url=row.image_url,
        product_url=row.product_url,
        tags=list(row.tags or []),
        attributes=dict(row.attributes or {}),
    )


def _facet_clause(key: str, values: list[str]):
    return exists().where(
        ProductFacet.product_id == ProductRow.id,
        ProductFacet.facet_key == key,
        ProductFacet.facet_value.in_(values),
    )


def build_search_statement(query: SearchQuery):
    """Build the SELECT for a catalog search.

    Full-text matching filters results only when no category or facet filter
    is present; otherwise the text only ranks the filtered rows.
    """
    stmt = select(ProductRow).outerjoin(Category, ProductRow.category_id == Category.id)

    if query.budget_min is not None:
        stmt = stmt.where(ProductRow.price >= query.budget_min)
    if query.budget_max is not None:
        stmt = stmt.where(ProductRow.price <= query.budget_max)
    if query.categories:
        stmt = stmt.where(Category.name.in_(query.categories))

    facets = query.facets or FacetFilter()
    if facets.occasion:
        stmt = stmt.where(_facet_clause("occasion", [facets.occasion]))
    if facets.recipients:
        stmt = stmt.where(_facet_clause("recipient", facets.recipients))
    if facets.interests:
        stmt = stmt.where(_facet_clause("interest", facets.interests))
    if facets.values:
        stmt = stmt.where(_facet_clause("value", facets.values))

    if query.text:
        document = func.to_tsvector(
            "english", ProductRow.title + " " + func.coalesce(ProductRow.description, "")
        )
        ts_query = func.plainto_tsquery("english", query.text)
        if facets.is_empty and not query.categories:
            stmt = stmt.where(document.op("@@")(ts_query))
        stmt = stmt.order_by(func.ts_rank(document, ts_query).desc(), ProductRow.updated_at.desc())
    else:
        stmt = stmt.order_by(ProductRow.updated_at.desc())

    limit = min(query.limit, MAX_SEARCH_LIMIT)
    return stmt.limit(limit).offset(max(query.offset, 0))


class PostgresCatalog:
    """Catalog port over the products / product_facets tables.

    Each call opens its own session so calls can run on worker threads.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def search(self, query: SearchQuery) -> list[Product]:
        with self.session_factory() as db:
            rows = db.scalars(build_search_statement(query)).all()
            products = [to_product(row) for row in rows]
        logger.debug(f"Catalog search returned {len(products)} products")
        return products

    def get_by_id(self, product_id: str) -> Product | None:
        """Retrieve a product by its catalog ID.

        Returns:
            Product if found, None otherwise
        """
        with self.session_factory() as db:
            row = db.get(ProductRow, product_id)
            return to_product(row) if row else None

    def facets_for_products(self, product_ids: list[str]) -> dict[str, list[Facet]]:
        """Fetch facets for many products in one query.

        Returns:
            Mapping of every requested ID to its facets (empty list when none)
        """
        result: dict[str, list[Facet]] = {pid: [] for pid in product_ids}
        if not product_ids:
            return result

        with self.session_factory() as db:
            rows = db.scalars(
                select(ProductFacet).where(ProductFacet.product_id.in_(product_ids))
            ).all()
            for row in rows:
                result.setdefault(row.product_id, []).append(
                    Facet(
                        product_id=row.product_id,
                        key=row.facet_key,
                        value=row.facet_value,
                        confidence=max(0.0, min(1.0, float(row.confidence))),
                        source=FacetSource(row.source) if row.source in _FACET_SOURCES else FacetSource.RULES,
                    )
                )
        return result

    def list_categories(self) -> list[str]:
        with self.session_factory() as db:
            return list(db.scalars(select(Category.name).order_by(Category.name)).all())
