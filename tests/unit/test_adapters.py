"""Tests for infrastructure adapters (Postgres, Redis, Cohere, OpenAI) using mocks."""

import json
import sys
from pathlib import Path
from types import SimpleNamespace

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from unittest.mock import MagicMock, patch

import pytest
import requests
from sqlalchemy.dialects import postgresql

from giftmatch.core.redis_client import RedisKeyValueStore
from giftmatch.models.domain import (
    FacetFilter,
    FacetSource,
    MissingSignal,
    Product,
    PromptVariant,
    RecipientKey,
    SearchQuery,
    SignalSet,
)
from giftmatch.services.catalog_service import PostgresCatalog, build_search_statement
from giftmatch.services.preference_graph import PostgresPreferenceGraph, recipient_id_for
from giftmatch.services.question_generator import build_context_block, generate_question
from giftmatch.services.reranker import CohereReranker, rerank_document
from giftmatch.services.trending import RedisTrendingSignal, TrendingCache


def session_factory_for(db: MagicMock) -> MagicMock:
    factory = MagicMock()
    factory.return_value.__enter__.return_value = db
    return factory


def compiled(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


# =============================================================================
# Catalog
# =============================================================================


def test_search_statement_text_filters_without_facets():
    sql = compiled(build_search_statement(SearchQuery(text="yoga mat", budget_max=50)))
    assert "@@ plainto_tsquery" in sql
    assert "products.price <=" in sql
    assert "ts_rank" in sql
    print("✓ Full-text filter applied when no facets or categories")


def test_search_statement_text_only_ranks_with_facets():
    query = SearchQuery(
        text="yoga", categories=["Sports & Outdoors"], facets=FacetFilter(interests=["fitness"])
    )
    sql = compiled(build_search_statement(query))
    assert "@@" not in sql
    assert "ts_rank" in sql
    assert "EXISTS" in sql
    assert "categories.name IN" in sql
    print("✓ Facets filter, text only ranks")


def test_search_limit_capped():
    stmt = build_search_statement(SearchQuery(limit=500))
    sql = str(stmt.compile(dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True}))
    assert "LIMIT 50" in sql
    print("✓ Search limit capped at 50")


def test_facets_for_products_fills_every_id():
    db = MagicMock()
    db.scalars.return_value.all.return_value = [
        SimpleNamespace(product_id="p1", facet_key="interest", facet_value="tea", confidence=1.4, source="ml"),
        SimpleNamespace(product_id="p1", facet_key="value", facet_value="vegan", confidence=0.5, source="bogus"),
    ]
    catalog = PostgresCatalog(session_factory_for(db))

    facets = catalog.facets_for_products(["p1", "p2"])

    assert set(facets) == {"p1", "p2"}
    assert facets["p2"] == []
    assert facets["p1"][0].confidence == 1.0
    assert facets["p1"][0].source == FacetSource.ML
    assert facets["p1"][1].source == FacetSource.RULES
    print("✓ Facets keyed by every requested id, confidence clamped")


def test_facets_for_no_products_skips_query():
    factory = MagicMock()
    assert PostgresCatalog(factory).facets_for_products([]) == {}
    factory.assert_not_called()
    print("✓ No ids, no query")


# =============================================================================
# Preference graph
# =============================================================================


def test_recipient_ids():
    assert recipient_id_for("u1") == "u1"
    assert recipient_id_for("u1", "sister") == "u1:sister"
    print("✓ Graph ids per user and recipient")


def test_record_likes_upserts_lowercased():
    db = MagicMock()
    graph = PostgresPreferenceGraph(session_factory_for(db))

    graph.record_likes("u1:sister", ["Home & Garden", "home & garden ", "Books & Media"])

    stmt = db.execute.call_args.args[0]
    sql = compiled(stmt)
    assert "ON CONFLICT (recipient_id, category) DO UPDATE" in sql
    values = list(stmt.compile(dialect=postgresql.dialect()).params.values())
    assert values.count("home & garden") == 1
    assert values.count("books & media") == 1
    db.commit.assert_called_once()
    print("✓ Likes upserted once per lower-cased category")


def test_record_likes_ignores_empty():
    factory = MagicMock()
    PostgresPreferenceGraph(factory).record_likes("u1", ["", "  "])
    factory.assert_not_called()
    print("✓ Nothing to record, no session opened")


# =============================================================================
# Redis
# =============================================================================


def test_redis_store_json_and_ttl():
    client = MagicMock()
    store = RedisKeyValueStore(client)

    store.set("k", {"a": 1}, ttl=30)
    client.setex.assert_called_once_with("k", 30, json.dumps({"a": 1}))

    store.set("k2", [1, 2])
    client.set.assert_called_once_with("k2", "[1, 2]")

    client.get.return_value = '{"a": 1}'
    assert store.get("k") == {"a": 1}
    client.get.return_value = None
    assert store.get("missing") is None
    print("✓ Redis store JSON-encodes and applies TTL")


def test_redis_store_keys_by_prefix():
    client = MagicMock()
    client.scan_iter.return_value = iter(["context:u1:recipient:b", "context:u1:recipient:a"])
    store = RedisKeyValueStore(client)

    assert store.keys("context:u1:recipient:") == ["context:u1:recipient:a", "context:u1:recipient:b"]
    client.scan_iter.assert_called_once_with(match="context:u1:recipient:*")

    store.delete()
    client.delete.assert_not_called()
    print("✓ SCAN by prefix; empty delete is a no-op")


def test_trending_publish_replaces_set():
    client = MagicMock()
    pipe = client.pipeline.return_value
    signal = RedisTrendingSignal(client, "trending:product_ids")

    signal.publish(["p1", "p2"], ttl_seconds=600)

    pipe.delete.assert_called_once_with("trending:product_ids")
    pipe.sadd.assert_called_once_with("trending:product_ids", "p1", "p2")
    pipe.expire.assert_called_once_with("trending:product_ids", 600)
    pipe.execute.assert_called_once()

    client.smembers.return_value = {"p1"}
    assert signal.trending_ids() == {"p1"}
    print("✓ Trending set replaced atomically")


def test_trending_cache_reloads_after_ttl_and_survives_errors():
    now = [0.0]
    loader = MagicMock(return_value=["p1"])
    cache = TrendingCache(loader, ttl_seconds=60, clock=lambda: now[0])

    assert cache.trending_ids() == {"p1"}
    now[0] = 30
    assert cache.trending_ids() == {"p1"}
    assert loader.call_count == 1

    now[0] = 61
    loader.side_effect = RuntimeError("redis down")
    assert cache.trending_ids() == {"p1"}
    assert loader.call_count == 2

    cache.clear()
    loader.side_effect = None
    loader.return_value = ["p9"]
    assert cache.trending_ids() == {"p9"}
    print("✓ Trending cache: TTL reload, previous set kept on failure")


# =============================================================================
# Cohere rerank
# =============================================================================


def test_cohere_rerank_request_and_parsing():
    session = MagicMock()
    session.post.return_value.json.return_value = {
        "results": [
            {"index": 1, "relevance_score": 0.91},
            {"index": 7, "relevance_score": 0.5},
            {"index": 0, "relevance_score": 0.12},
        ]
    }
    reranker = CohereReranker(api_key="key", base_url="https://api.example.com/", session=session)

    results = reranker.rerank("yoga gift", ["a", "b"], top_n=10)

    assert [(r.index, r.relevance_score) for r in results] == [(1, 0.91), (0, 0.12)]
    url = session.post.call_args.args[0]
    payload = session.post.call_args.kwargs["json"]
    assert url == "https://api.example.com/v2/rerank"
    assert payload["top_n"] == 2
    assert payload["documents"] == ["a", "b"]
    assert session.post.call_args.kwargs["headers"]["Authorization"] == "Bearer key"
    print("✓ Cohere payload built; out-of-range indexes dropped")


def test_cohere_rerank_errors_raise_runtime_error():
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("refused")
    reranker = CohereReranker(api_key="key", session=session)

    with pytest.raises(RuntimeError):
        reranker.rerank("q", ["a"], top_n=1)

    assert reranker.rerank("q", [], top_n=1) == []
    print("✓ Transport errors surface as RuntimeError")


def test_rerank_document_text():
    product = Product(id="p1", title="Cork Yoga Mat", description="Non-slip", category="Sports & Outdoors", vendor="Acme")
    assert rerank_document(product) == "Cork Yoga Mat | Non-slip | Sports & Outdoors | Acme"
    assert rerank_document(Product(id="p2", title="Mug")) == "Mug"
    print("✓ Rerank document joins the product's descriptive fields")


# =============================================================================
# LLM question phrasing
# =============================================================================


def test_generate_question_uses_context():
    client = MagicMock()
    client.chat.completions.create.return_value.choices = [
        SimpleNamespace(message=SimpleNamespace(content="  What does she love doing on weekends?  "))
    ]
    signals = SignalSet(recipient_key=RecipientKey.SISTER)

    with patch("giftmatch.services.question_generator.get_openai_client", return_value=client):
        question = generate_question(
            PromptVariant.HAVE_RECIPIENT,
            signals,
            "gift for my sister",
            [MissingSignal.BUDGET],
            notes=["gift for my sister"],
        )

    assert question == "What does she love doing on weekends?"
    messages = client.chat.completions.create.call_args.kwargs["messages"]
    assert "Recipient: sister" in messages[1]["content"]
    assert "Missing: budget" in messages[1]["content"]
    print(f"✓ Generated question: {question}")


def test_generate_question_raises_on_empty_reply():
    client = MagicMock()
    client.chat.completions.create.return_value.choices = [
        SimpleNamespace(message=SimpleNamespace(content=""))
    ]
    with patch("giftmatch.services.question_generator.get_openai_client", return_value=client):
        with pytest.raises(ValueError):
            generate_question(PromptVariant.GENERIC, SignalSet(), "hi", [])
    print("✓ Empty LLM reply raises so the caller can fall back")


def test_context_block_empty():
    assert build_context_block(SignalSet(), []) == "Nothing known yet."
    print("✓ Empty context block")
