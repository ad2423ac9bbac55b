"""Service wiring for FastAPI dependencies."""

import logging
from functools import lru_cache

from giftmatch.config import get_settings
from giftmatch.core.database import SessionLocal
from giftmatch.core.redis_client import get_kv_store, redis_client
from giftmatch.services.catalog_service import PostgresCatalog
from giftmatch.services.context_store import ContextStore
from giftmatch.services.conversation import ConversationService
from giftmatch.services.occasion_calendar import OccasionCalendar
from giftmatch.services.preference_graph import PostgresPreferenceGraph
from giftmatch.services.question_generator import generate_question
from giftmatch.services.recommendation_engine import RecommendService
from giftmatch.services.reranker import CohereReranker
from giftmatch.services.session_tracker import SessionTracker
from giftmatch.services.trending import RedisTrendingSignal, TrendingCache
from giftmatch.services.vector_search import PgVectorIndex

logger = logging.getLogger(__name__)
settings = get_settings()


@lru_cache
def get_catalog() -> PostgresCatalog:
    return PostgresCatalog(SessionLocal)


@lru_cache
def get_preference_graph() -> PostgresPreferenceGraph:
    return PostgresPreferenceGraph(SessionLocal)


@lru_cache
def get_occasion_calendar() -> OccasionCalendar:
    return OccasionCalendar()


@lru_cache
def get_context_store() -> ContextStore:
    return ContextStore(get_kv_store(), ttl_seconds=settings.context_ttl_seconds)


@lru_cache
def get_session_tracker() -> SessionTracker:
    return SessionTracker(get_kv_store(), get_catalog(), ttl_seconds=settings.session_ttl_seconds)


@lru_cache
def get_recommend_service() -> RecommendService:
    """Build the recommendation pipeline; optional ports stay null when unconfigured."""
    vector_search = PgVectorIndex(SessionLocal) if settings.vector_search_enabled else None
    published = RedisTrendingSignal(redis_client, settings.trending_redis_key)
    reranker = None
    if settings.rerank_enabled:
        reranker = CohereReranker(
            api_key=settings.cohere_api_key,
            model=settings.cohere_rerank_model,
            base_url=settings.cohere_base_url,
        )
    logger.info(
        f"Recommendation pipeline: vector_search={vector_search is not None}, "
        f"rerank={reranker is not None}"
    )
    return RecommendService(
        catalog=get_catalog(),
        vector_search=vector_search,
        graph=get_preference_graph(),
        trending=TrendingCache(published.trending_ids, ttl_seconds=settings.trending_cache_seconds),
        occasions=get_occasion_calendar(),
        reranker=reranker,
        port_timeout=settings.port_timeout_seconds,
    )


@lru_cache
def get_conversation_service() -> ConversationService:
    phrase_question = None
    if settings.llm_phrasing_enabled and settings.openai_api_key:
        phrase_question = generate_question
    return ConversationService(
        context_store=get_context_store(),
        recommender=get_recommend_service(),
        catalog=get_catalog(),
        graph=get_preference_graph(),
        phrase_question=phrase_question,
        recommendation_limit=settings.recommendation_limit,
    )
