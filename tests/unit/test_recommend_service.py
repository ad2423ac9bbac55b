"""Tests for retrieval fallbacks, port degradation and reranking."""

import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from unittest.mock import MagicMock

from giftmatch.models.domain import (
    Facet,
    Product,
    RecommendationRequest,
    RerankResult,
    SignalSet,
    VectorHit,
)
from giftmatch.services.recommendation_engine import RecommendService

PRODUCTS = {
    f"p{i}": Product(id=f"p{i}", title=f"Gift {i}", category="Home & Garden", price=10.0 * i)
    for i in range(1, 7)
}


class StubCatalog:
    def __init__(self, keyword_results=None, default_results=None):
        self.keyword_results = keyword_results or []
        self.default_results = default_results or []
        self.queries = []

    def search(self, query):
        self.queries.append(query)
        if query.text or query.categories or (query.facets and not query.facets.is_empty):
            return list(self.keyword_results)
        return list(self.default_results)

    def get_by_id(self, product_id):
        return PRODUCTS.get(product_id)

    def facets_for_products(self, product_ids):
        return {pid: [] for pid in product_ids}

    def list_categories(self):
        return ["Home & Garden"]


class StubVectorSearch:
    def __init__(self, hits=None, error=None):
        self.hits = hits or []
        self.error = error
        self.calls = []

    def search(self, text, k, budget_min=None, budget_max=None):
        self.calls.append((text, k, budget_min, budget_max))
        if self.error:
            raise self.error
        return list(self.hits)


class SlowTrending:
    def trending_ids(self):
        time.sleep(0.5)
        return {"p1"}


def request_for(text: str = "gardening", limit: int = 5, **kwargs) -> RecommendationRequest:
    return RecommendationRequest(query_text=text, limit=limit, **kwargs)


# =============================================================================
# Retrieval
# =============================================================================


def test_vector_hits_become_candidates():
    vector = StubVectorSearch(hits=[VectorHit(id="p2", score=0.9), VectorHit(id="missing", score=0.8)])
    service = RecommendService(catalog=StubCatalog(), vector_search=vector)

    items = service.retrieve(request_for(limit=5, budget_max=50))

    assert [it.product.id for it in items] == ["p2"]
    assert items[0].score == 0.9
    assert vector.calls == [("gardening", 15, None, 50)]
    print("✓ Vector hits resolved through the catalog; k = min(3 * limit, 30)")


def test_vector_k_is_capped():
    vector = StubVectorSearch()
    service = RecommendService(catalog=StubCatalog(), vector_search=vector)
    service.retrieve(request_for(limit=20))
    assert vector.calls[0][1] == 30
    print("✓ Nearest-neighbour k capped at 30")


def test_vector_failure_falls_back_to_keyword():
    catalog = StubCatalog(keyword_results=[PRODUCTS["p1"], PRODUCTS["p3"]])
    service = RecommendService(
        catalog=catalog, vector_search=StubVectorSearch(error=RuntimeError("index down"))
    )

    items = service.retrieve(request_for())

    assert [it.product.id for it in items] == ["p1", "p3"]
    assert items[0].score == 0.5
    assert abs(items[1].score - 0.48) < 1e-9
    assert catalog.queries[0].limit == 10
    print("✓ Vector error -> keyword fallback with rank-decaying scores")


def test_empty_keyword_results_fall_back_to_default_list():
    catalog = StubCatalog(default_results=[PRODUCTS["p4"], PRODUCTS["p5"]])
    service = RecommendService(catalog=catalog)

    items = service.retrieve(request_for())

    assert [it.product.id for it in items] == ["p4", "p5"]
    assert items[0].score == 1.0
    assert abs(items[1].score - 0.95) < 1e-9
    print("✓ Keyword miss -> unfiltered default list")


def test_catalog_failure_returns_empty_not_error():
    catalog = MagicMock()
    catalog.search.side_effect = RuntimeError("db down")
    service = RecommendService(catalog=catalog)

    result = service.recommend(request_for())

    assert result.items == []
    print("✓ Every stage failing yields an empty result, not an exception")


# =============================================================================
# Boost ports
# =============================================================================


def test_slow_port_is_skipped():
    catalog = StubCatalog(keyword_results=[PRODUCTS["p1"], PRODUCTS["p2"]])
    service = RecommendService(catalog=catalog, trending=SlowTrending(), port_timeout=0.1)

    result = service.recommend(request_for())

    assert [it.product.id for it in result.items] == ["p1", "p2"]
    assert result.items[0].score == 0.5
    print("✓ Trending timeout -> no trending boost, response still returned")


def test_graph_only_queried_with_recipient_id():
    graph = MagicMock()
    graph.preferred_categories.return_value = ["Home & Garden"]
    catalog = StubCatalog(keyword_results=[PRODUCTS["p1"]])
    service = RecommendService(catalog=catalog, graph=graph)

    service.recommend(request_for())
    graph.preferred_categories.assert_not_called()

    result = service.recommend(request_for(recipient_id="u1:sister"))
    graph.preferred_categories.assert_called_once_with("u1:sister")
    assert abs(result.items[0].score - 0.8) < 1e-9
    print("✓ Preference graph consulted only for a known recipient")


def test_facet_port_error_degrades():
    catalog = StubCatalog(keyword_results=[PRODUCTS["p1"]])
    catalog.facets_for_products = MagicMock(side_effect=RuntimeError("facets down"))
    service = RecommendService(catalog=catalog)

    result = service.recommend(request_for())

    assert len(result.items) == 1
    assert result.items[0].rationale.startswith("Why: ")
    print("✓ Facet lookup failure leaves scores unboosted")


# =============================================================================
# Rerank
# =============================================================================


def make_reranker(results=None, error=None):
    reranker = MagicMock()
    reranker.enabled = True
    if error:
        reranker.rerank.side_effect = error
    else:
        reranker.rerank.return_value = results or []
    return reranker


def test_rerank_blends_scores_and_reorders():
    catalog = StubCatalog(keyword_results=[PRODUCTS["p1"], PRODUCTS["p2"], PRODUCTS["p3"]])
    reranker = make_reranker(
        [RerankResult(index=2, relevance_score=0.9), RerankResult(index=0, relevance_score=0.2)]
    )
    service = RecommendService(catalog=catalog, reranker=reranker)

    result = service.recommend(request_for(limit=2))

    assert [it.product.id for it in result.items] == ["p3", "p1"]
    assert abs(result.items[0].score - (0.3 * 0.46 + 0.7 * 0.9)) < 1e-9
    assert result.items[0].rerank_score == 0.9
    args = reranker.rerank.call_args.args
    assert args[0] == "gardening"
    assert len(args[1]) == 3
    assert args[2] == 2
    print("✓ score = 0.3 * existing + 0.7 * relevance, then re-sorted")


def test_rerank_failure_keeps_order():
    catalog = StubCatalog(keyword_results=[PRODUCTS["p1"], PRODUCTS["p2"], PRODUCTS["p3"]])
    service = RecommendService(catalog=catalog, reranker=make_reranker(error=RuntimeError("429")))

    result = service.recommend(request_for(limit=2))

    assert [it.product.id for it in result.items] == ["p1", "p2"]
    assert all(it.rerank_score is None for it in result.items)
    print("✓ Rerank error -> original order truncated to limit")


def test_rerank_ignores_invalid_indexes():
    products = [PRODUCTS[f"p{i}"] for i in range(1, 6)]
    reranker = make_reranker([RerankResult(index=-1, relevance_score=0.9), RerankResult(index=9, relevance_score=0.8)])
    service = RecommendService(catalog=StubCatalog(keyword_results=products), reranker=reranker)

    result = service.recommend(request_for(limit=5))

    assert [it.product.id for it in result.items] == ["p1", "p2", "p3", "p4", "p5"]
    assert all(it.rerank_score is None for it in result.items)
    print("✓ Out-of-range rerank indexes -> original order kept")


def test_rerank_keeps_first_of_duplicate_indexes():
    catalog = StubCatalog(keyword_results=[PRODUCTS["p1"], PRODUCTS["p2"], PRODUCTS["p3"]])
    reranker = make_reranker(
        [
            RerankResult(index=1, relevance_score=0.9),
            RerankResult(index=1, relevance_score=0.1),
            RerankResult(index=3, relevance_score=0.5),
        ]
    )
    service = RecommendService(catalog=catalog, reranker=reranker)

    result = service.recommend(request_for(limit=3))

    assert [it.product.id for it in result.items] == ["p2"]
    assert result.items[0].rerank_score == 0.9
    assert abs(result.items[0].score - (0.3 * 0.48 + 0.7 * 0.9)) < 1e-9
    print("✓ Duplicate rerank index scored once")


def test_rerank_skipped_without_query_text():
    catalog = StubCatalog(default_results=[PRODUCTS["p1"]])
    reranker = make_reranker([RerankResult(index=0, relevance_score=1.0)])
    service = RecommendService(catalog=catalog, reranker=reranker)

    service.recommend(request_for(text=""))

    reranker.rerank.assert_not_called()
    print("✓ No query text, no rerank call")


def test_recommend_for_signals_respects_limit():
    catalog = StubCatalog(keyword_results=list(PRODUCTS.values()))
    service = RecommendService(catalog=catalog)

    result = service.recommend_for_signals(SignalSet(interests=["gardening"]), limit=3)

    assert len(result.items) == 3
    assert result.took_ms >= 0
    print("✓ Result truncated to the requested limit")


def test_facets_feed_rationale():
    catalog = StubCatalog(keyword_results=[PRODUCTS["p1"]])
    catalog.facets_for_products = lambda ids: {
        "p1": [Facet(product_id="p1", key="interest", value="gardening", confidence=1.0)]
    }
    service = RecommendService(catalog=catalog)

    result = service.recommend(request_for(interests=["gardening"]))

    assert "Ideal for gardening enthusiasts" in result.items[0].rationale_parts
    assert abs(result.items[0].score - 0.8) < 1e-9
    print("✓ Matched facets appear in the rationale")
