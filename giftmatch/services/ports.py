"""Collaborator contracts consumed by the recommendation pipeline.

Optional collaborators (vector index, preference graph, trending, reranker)
each ship a null implementation, so the pipeline never branches on "is this
configured".
"""

from typing import Optional, Protocol, runtime_checkable

from giftmatch.models.domain import DetectedOccasion, Facet, Product, RerankResult, SearchQuery, VectorHit


@runtime_checkable
class Catalog(Protocol):
    def search(self, query: SearchQuery) -> list[Product]: ...

    def get_by_id(self, product_id: str) -> Optional[Product]: ...

    def facets_for_products(self, product_ids: list[str]) -> dict[str, list[Facet]]: ...

    def list_categories(self) -> list[str]: ...


@runtime_checkable
class VectorSearch(Protocol):
    def search(
        self,
        text: str,
        k: int,
        budget_min: Optional[float] = None,
        budget_max: Optional[float] = None,
    ) -> list[VectorHit]: ...


@runtime_checkable
class PreferenceGraph(Protocol):
    def preferred_categories(self, recipient_id: str) -> list[str]: ...

    def record_likes(self, recipient_id: str, categories: list[str]) -> None: ...


@runtime_checkable
class TrendingSignal(Protocol):
    def trending_ids(self) -> set[str]: ...


@runtime_checkable
class OccasionSource(Protocol):
    def current_occasion(self) -> Optional[DetectedOccasion]: ...


@runtime_checkable
class Reranker(Protocol):
    def rerank(self, query: str, documents: list[str], top_n: int) -> list[RerankResult]: ...


class NullVectorSearch:
    def search(self, text, k, budget_min=None, budget_max=None) -> list[VectorHit]:
        return []


class NullPreferenceGraph:
    def preferred_categories(self, recipient_id: str) -> list[str]:
        return []

    def record_likes(self, recipient_id: str, categories: list[str]) -> None:
        return None


class NullTrendingSignal:
    def trending_ids(self) -> set[str]:
        return set()


class NullOccasionSource:
    def current_occasion(self) -> Optional[DetectedOccasion]:
        return None


class NullReranker:
    """Identity reranker: keeps the incoming order and scores."""

    enabled = False

    def rerank(self, query: str, documents: list[str], top_n: int) -> list[RerankResult]:
        return []
