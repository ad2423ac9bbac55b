"""Recommendation pipeline: hybrid retrieval, boosting, reranking, rationale."""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Any, Callable, Optional

from langfuse import observe
from pydantic import BaseModel, Field

from giftmatch.constants import (
    DEFAULT_LIST_BASE_SCORE,
    DEFAULT_LIST_SCORE_STEP,
    FACET_BOOST_WEIGHTS,
    GRAPH_PREFERENCE_BOOST,
    HIGH_QUALITY_THRESHOLD,
    KEYWORD_BASE_SCORE,
    KEYWORD_CANDIDATE_CAP,
    KEYWORD_CANDIDATE_MULTIPLIER,
    KEYWORD_SCORE_STEP,
    MEDIUM_QUALITY_THRESHOLD,
    OCCASION_EXACT_BOOST,
    OCCASION_RELATED_BOOST,
    QUALITY_GATE_MAX_ITEMS,
    QUALITY_GATE_MIN_ITEMS,
    RERANK_EXISTING_WEIGHT,
    RERANK_RELEVANCE_WEIGHT,
    TRENDING_BOOST,
    VECTOR_CANDIDATE_CAP,
    VECTOR_CANDIDATE_MULTIPLIER,
)
from giftmatch.models.domain import (
    CandidateItem,
    DetectedOccasion,
    Facet,
    FacetFilter,
    RankedItem,
    RecipientKey,
    RecommendationRequest,
    RecommendationResult,
    SearchQuery,
    SignalSet,
)
from giftmatch.services.occasion_calendar import occasion_boost
from giftmatch.services.ports import (
    Catalog,
    NullOccasionSource,
    NullPreferenceGraph,
    NullReranker,
    NullTrendingSignal,
    NullVectorSearch,
    OccasionSource,
    PreferenceGraph,
    Reranker,
    TrendingSignal,
    VectorSearch,
)
from giftmatch.services.reranker import rerank_document

logger = logging.getLogger(__name__)

# Shared by all requests; port calls are short and bounded by a timeout
_PORT_EXECUTOR = ThreadPoolExecutor(max_workers=16, thread_name_prefix="port-call")

RECIPIENT_FACETS: dict[RecipientKey, list[str]] = {
    RecipientKey.SISTER: ["for_her", "her"],
    RecipientKey.MOTHER: ["for_her", "her", "mom"],
    RecipientKey.WIFE: ["for_her", "her"],
    RecipientKey.DAUGHTER: ["for_her", "her"],
    RecipientKey.AUNT: ["for_her", "her"],
    RecipientKey.GRANDMA: ["for_her", "her"],
    RecipientKey.BROTHER: ["for_him", "him"],
    RecipientKey.FATHER: ["for_him", "him", "dad"],
    RecipientKey.HUSBAND: ["for_him", "him"],
    RecipientKey.SON: ["for_him", "him"],
    RecipientKey.UNCLE: ["for_him", "him"],
    RecipientKey.GRANDPA: ["for_him", "him"],
    RecipientKey.CHILD: ["for_kids", "kids"],
    RecipientKey.NEPHEW: ["for_kids", "kids"],
    RecipientKey.NIECE: ["for_kids", "kids"],
    RecipientKey.PARTNER: ["for_couples", "partner"],
}
"""Recipient facet values a product may carry for each recipient; unlisted keys map to themselves."""


class ScoringWeights(BaseModel):
    """Boost, rerank and quality-gate weights. Defaults mirror giftmatch.constants."""

    facet_occasion: float = Field(FACET_BOOST_WEIGHTS["occasion"], ge=0)
    facet_recipient: float = Field(FACET_BOOST_WEIGHTS["recipient"], ge=0)
    facet_interest: float = Field(FACET_BOOST_WEIGHTS["interest"], ge=0)
    facet_value: float = Field(FACET_BOOST_WEIGHTS["value"], ge=0)
    graph_preference: float = Field(GRAPH_PREFERENCE_BOOST, ge=0)
    trending: float = Field(TRENDING_BOOST, ge=0)
    occasion_exact: float = Field(OCCASION_EXACT_BOOST, ge=0)
    occasion_related: float = Field(OCCASION_RELATED_BOOST, ge=0)
    rerank_existing: float = RERANK_EXISTING_WEIGHT
    rerank_relevance: float = RERANK_RELEVANCE_WEIGHT
    high_quality: float = HIGH_QUALITY_THRESHOLD
    medium_quality: float = MEDIUM_QUALITY_THRESHOLD


class BoostInputs(BaseModel):
    """Read-only inputs for the boost stages, fetched concurrently."""

    facets: dict[str, list[Facet]] = Field(default_factory=dict)
    preferred_categories: set[str] = Field(default_factory=set)
    trending_ids: set[str] = Field(default_factory=set)
    current_occasion: Optional[DetectedOccasion] = None


def recipient_facets(recipient_key: Optional[RecipientKey]) -> list[str]:
    if recipient_key is None:
        return []
    return RECIPIENT_FACETS.get(recipient_key, [recipient_key.value])


def build_query_text(signals: SignalSet, utterance: str = "") -> str:
    """Search text from interests and the first category, else the utterance."""
    terms = list(signals.interests)
    if signals.categories:
        terms.append(signals.categories[0].lower())
    return " ".join(terms) if terms else utterance.strip()


def build_recommendation_request(
    signals: SignalSet,
    limit: int,
    recipient_id: Optional[str] = None,
    utterance: str = "",
) -> RecommendationRequest:
    """Translate a merged signal set into a retrieval request."""
    occasion = signals.occasion.value if signals.occasion else None
    return RecommendationRequest(
        query_text=build_query_text(signals, utterance),
        budget_min=signals.budget_min,
        budget_max=signals.budget_max,
        categories=list(signals.categories),
        interests=list(signals.interests),
        occasion=occasion,
        facets=FacetFilter(
            occasion=occasion,
            recipients=recipient_facets(signals.recipient_key),
            interests=list(signals.interests),
            values=list(signals.values),
        ),
        recipient_id=recipient_id,
        limit=limit,
    )


# ============================================================================
# Boost deltas (pure functions of one item and read-only inputs)
# ============================================================================


def facet_boost(item: CandidateItem, request: RecommendationRequest, weights: ScoringWeights) -> float:
    """Boost from product facets that match the request.

    Example:
        Facets [(interest, gardening, 0.9), (value, handmade, 0.5)] with
        interests=[gardening], values=[handmade] -> 0.3 * 0.9 + 0.2 * 0.5 = 0.37
    """
    boost = 0.0
    if request.occasion:
        match = next(
            (f for f in item.facets if f.key == "occasion" and request.occasion in f.value),
            None,
        )
        if match:
            boost += weights.facet_occasion * match.confidence

    recipients = set(request.facets.recipients)
    interests = set(request.interests)
    values = set(request.facets.values)
    for facet in item.facets:
        if facet.key == "recipient" and facet.value in recipients:
            boost += weights.facet_recipient * facet.confidence
        elif facet.key == "interest" and facet.value in interests:
            boost += weights.facet_interest * facet.confidence
        elif facet.key == "value" and facet.value in values:
            boost += weights.facet_value * facet.confidence
    return boost


def graph_boost(item: CandidateItem, preferred: set[str], weights: ScoringWeights) -> float:
    category = (item.product.category or "").lower()
    return weights.graph_preference if category and category in preferred else 0.0


def trending_boost(item: CandidateItem, trending_ids: set[str], weights: ScoringWeights) -> float:
    return weights.trending if item.product.id in trending_ids else 0.0


def calendar_boost(
    item: CandidateItem, current: Optional[DetectedOccasion], weights: ScoringWeights
) -> float:
    return sum(
        occasion_boost(f.value, current, weights.occasion_exact, weights.occasion_related)
        for f in item.facets
        if f.key == "occasion"
    )


def apply_boosts(
    items: list[CandidateItem],
    request: RecommendationRequest,
    inputs: BoostInputs,
    weights: ScoringWeights,
) -> list[CandidateItem]:
    """Compute every boost independently, add them, then sort once."""
    for item in items:
        item.facets = inputs.facets.get(item.product.id, [])
        item.boosts = {
            "facet": facet_boost(item, request, weights),
            "graph": graph_boost(item, inputs.preferred_categories, weights),
            "trending": trending_boost(item, inputs.trending_ids, weights),
            "occasion": calendar_boost(item, inputs.current_occasion, weights),
        }
        item.score += sum(item.boosts.values())
    return sorted(items, key=lambda it: it.score, reverse=True)


# ============================================================================
# Rationale
# ============================================================================


def _humanize(value: str) -> str:
    return value.replace("_", " ")


def build_rationale_parts(item: CandidateItem, request: RecommendationRequest) -> list[str]:
    """Short reasons for one item, in priority order. Never empty."""
    parts = []
    facets = item.facets

    if request.occasion and any(
        f.key == "occasion" and request.occasion in f.value for f in facets
    ):
        parts.append(f"Perfect for {_humanize(request.occasion)}")

    recipient = next(
        (f for f in facets if f.key == "recipient" and f.value in request.facets.recipients),
        None,
    )
    if recipient:
        label = _humanize(recipient.value)
        parts.append(f"Great gift {label}" if label.startswith("for ") else f"Great gift for {label}")

    interests = [f.value for f in facets if f.key == "interest" and f.value in request.interests]
    if interests:
        parts.append(f"Ideal for {' & '.join(interests)} enthusiasts")

    values = [_humanize(f.value) for f in facets if f.key == "value" and f.value in request.facets.values]
    if values:
        parts.append(f"{' & '.join(values)} choice")

    price = item.product.price
    within = (request.budget_min is None or price >= request.budget_min) and (
        request.budget_max is None or price <= request.budget_max
    )
    if request.has_budget and within:
        budget = f"${request.budget_max:g}" if request.budget_max is not None else "budget"
        parts.append(f"Within your {budget} budget")

    if not parts:
        hint = request.categories[0] if request.categories else None
        if hint and item.product.category and hint.lower() in item.product.category.lower():
            parts.append(f"Matches {hint}")
        else:
            parts.append("A thoughtful choice based on your preferences")
    return parts


def format_rationale(parts: list[str]) -> str:
    return f"Why: {'. '.join(parts)}."


# ============================================================================
# Quality gate
# ============================================================================


def apply_quality_gate(
    items: list[RankedItem],
    high: float = HIGH_QUALITY_THRESHOLD,
    medium: float = MEDIUM_QUALITY_THRESHOLD,
    min_items: int = QUALITY_GATE_MIN_ITEMS,
    max_items: int = QUALITY_GATE_MAX_ITEMS,
) -> list[RankedItem]:
    """Keep a short list of strong matches.

    - at least ``min_items`` high-quality (score > high): only those, capped
    - else high + medium (medium < score <= high) when that reaches ``min_items``
    - else the best of whatever exists, capped

    Example:
        Scores [0.9, 0.85, 0.8, 0.6, 0.55, 0.4] -> the first three only
    """
    high_quality = [it for it in items if it.score > high]
    medium_quality = [it for it in items if medium < it.score <= high]

    if len(high_quality) >= min_items:
        return high_quality[:max_items]
    if len(high_quality) + len(medium_quality) >= min_items:
        return (high_quality + medium_quality)[:max_items]
    return items[:max_items]


# ============================================================================
# Orchestrator
# ============================================================================


class RecommendService:
    """Runs the recommendation pipeline against injected ports.

    Every optional port defaults to its null implementation. Any port error or
    timeout degrades the affected stage and is never raised to the caller.
    """

    def __init__(
        self,
        catalog: Catalog,
        vector_search: Optional[VectorSearch] = None,
        graph: Optional[PreferenceGraph] = None,
        trending: Optional[TrendingSignal] = None,
        occasions: Optional[OccasionSource] = None,
        reranker: Optional[Reranker] = None,
        weights: Optional[ScoringWeights] = None,
        port_timeout: float = 2.5,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.catalog = catalog
        self.vector_search = vector_search or NullVectorSearch()
        self.graph = graph or NullPreferenceGraph()
        self.trending = trending or NullTrendingSignal()
        self.occasions = occasions or NullOccasionSource()
        self.reranker = reranker or NullReranker()
        self.weights = weights or ScoringWeights()
        self.port_timeout = port_timeout
        self.executor = executor or _PORT_EXECUTOR

    def _call_port(self, name: str, fn: Callable[..., Any], *args: Any, default: Any = None) -> Any:
        """Call a port on the executor with a timeout; return ``default`` on any failure."""
        future = self.executor.submit(fn, *args)
        try:
            return future.result(timeout=self.port_timeout)
        except FutureTimeoutError:
            future.cancel()
            logger.warning(f"{name} timed out after {self.port_timeout}s")
        except Exception as e:
            logger.warning(f"{name} failed: {e}")
        return default

    def _gather(self, calls: dict[str, tuple]) -> dict[str, Any]:
        """Issue several port calls concurrently, each bounded by the port timeout.

        Args:
            calls: name -> (fn, args tuple, default)
        """
        deadline = time.monotonic() + self.port_timeout
        futures = {
            name: (self.executor.submit(fn, *args), default)
            for name, (fn, args, default) in calls.items()
        }
        results = {}
        for name, (future, default) in futures.items():
            try:
                results[name] = future.result(timeout=max(0.0, deadline - time.monotonic()))
            except FutureTimeoutError:
                future.cancel()
                logger.warning(f"{name} timed out after {self.port_timeout}s, no boost applied")
                results[name] = default
            except Exception as e:
                logger.warning(f"{name} failed, no boost applied: {e}")
                results[name] = default
        return results

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def _vector_candidates(self, request: RecommendationRequest) -> list[CandidateItem]:
        if not request.query_text:
            return []
        k = min(request.limit * VECTOR_CANDIDATE_MULTIPLIER, VECTOR_CANDIDATE_CAP)
        hits = self._call_port(
            "vector search",
            self.vector_search.search,
            request.query_text,
            k,
            request.budget_min,
            request.budget_max,
            default=[],
        )
        if not hits:
            return []

        # Resolve hits to products in parallel
        futures = [(hit, self.executor.submit(self.catalog.get_by_id, hit.id)) for hit in hits]
        deadline = time.monotonic() + self.port_timeout
        items = []
        for hit, future in futures:
            try:
                product = future.result(timeout=max(0.0, deadline - time.monotonic()))
            except FutureTimeoutError:
                future.cancel()
                logger.warning(f"Catalog lookup timed out for product {hit.id}")
                continue
            except Exception as e:
                logger.warning(f"Catalog lookup failed for product {hit.id}: {e}")
                continue
            if product is not None:
                items.append(CandidateItem(product=product, score=hit.score))
        logger.debug(f"Vector search: {len(hits)} hits, {len(items)} resolved")
        return items

    def _keyword_candidates(self, request: RecommendationRequest) -> list[CandidateItem]:
        query = SearchQuery(
            text=request.query_text or None,
            budget_min=request.budget_min,
            budget_max=request.budget_max,
            categories=request.categories,
            facets=request.facets,
            limit=min(request.limit * KEYWORD_CANDIDATE_MULTIPLIER, KEYWORD_CANDIDATE_CAP),
        )
        products = self._call_port("keyword search", self.catalog.search, query, default=[])
        return [
            CandidateItem(product=p, score=KEYWORD_BASE_SCORE - i * KEYWORD_SCORE_STEP)
            for i, p in enumerate(products)
        ]

    def _default_candidates(self, request: RecommendationRequest) -> list[CandidateItem]:
        products = self._call_port(
            "default list", self.catalog.search, SearchQuery(limit=request.limit), default=[]
        )
        return [
            CandidateItem(product=p, score=DEFAULT_LIST_BASE_SCORE - i * DEFAULT_LIST_SCORE_STEP)
            for i, p in enumerate(products)
        ]

    @observe()
    def retrieve(self, request: RecommendationRequest) -> list[CandidateItem]:
        """Vector search, then keyword search, then the default list; first non-empty wins."""
        for stage in (self._vector_candidates, self._keyword_candidates, self._default_candidates):
            items = stage(request)
            if items:
                logger.info(f"Retrieved {len(items)} candidates via {stage.__name__.strip('_')}")
                return items
        logger.info("Retrieval returned no candidates")
        return []

    # ------------------------------------------------------------------
    # Boosting & rerank
    # ------------------------------------------------------------------

    def fetch_boost_inputs(
        self, items: list[CandidateItem], request: RecommendationRequest
    ) -> BoostInputs:
        ids = [it.product.id for it in items]
        calls = {
            "facets": (self.catalog.facets_for_products, (ids,), {}),
            "trending": (self.trending.trending_ids, (), set()),
            "occasion calendar": (self.occasions.current_occasion, (), None),
        }
        if request.recipient_id:
            calls["preference graph"] = (
                self.graph.preferred_categories,
                (request.recipient_id,),
                [],
            )
        results = self._gather(calls)
        return BoostInputs(
            facets=results["facets"] or {},
            preferred_categories={c.lower() for c in results.get("preference graph") or []},
            trending_ids=set(results["trending"] or ()),
            current_occasion=results["occasion calendar"],
        )

    @observe()
    def rerank(self, request: RecommendationRequest, items: list[CandidateItem]) -> list[CandidateItem]:
        """Blend reranker relevance into scores; on any failure keep the order."""
        limit = request.limit
        if not getattr(self.reranker, "enabled", True) or not request.query_text or not items:
            return items[:limit]

        documents = [rerank_document(it.product) for it in items]
        try:
            results = self.reranker.rerank(request.query_text, documents, limit)
        except Exception as e:
            logger.warning(f"Reranking failed, keeping original order: {e}")
            return items[:limit]
        # Ports may return out-of-range or repeated indexes; keep the first valid hit per item
        seen: set[int] = set()
        valid = []
        for result in results or []:
            if 0 <= result.index < len(items) and result.index not in seen:
                seen.add(result.index)
                valid.append(result)
        if len(valid) < len(results or []):
            logger.warning(f"Reranker returned {len(results) - len(valid)} invalid indexes, ignored")
        if not valid:
            return items[:limit]

        reranked = []
        for result in valid:
            item = items[result.index]
            item.rerank_score = result.relevance_score
            item.score = (
                self.weights.rerank_existing * item.score
                + self.weights.rerank_relevance * result.relevance_score
            )
            reranked.append(item)
        reranked.sort(key=lambda it: it.score, reverse=True)
        return reranked[:limit]

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    @observe()
    def recommend(self, request: RecommendationRequest) -> RecommendationResult:
        """Run retrieval, boosting, rerank and rationale for one request.

        Args:
            request: Retrieval request built from merged signals

        Returns:
            At most ``request.limit`` ranked items, best first
        """
        start = time.monotonic()

        items = self.retrieve(request)
        if items:
            inputs = self.fetch_boost_inputs(items, request)
            items = apply_boosts(items, request, inputs, self.weights)
        items = self.rerank(request, items)

        ranked = []
        for item in items:
            parts = build_rationale_parts(item, request)
            ranked.append(
                RankedItem(
                    product=item.product,
                    score=item.score,
                    rationale=format_rationale(parts),
                    rationale_parts=parts,
                    rerank_score=item.rerank_score,
                )
            )

        took_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"Recommended {len(ranked)} items in {took_ms}ms")
        return RecommendationResult(items=ranked, took_ms=took_ms)

    def recommend_for_signals(
        self,
        signals: SignalSet,
        limit: int,
        recipient_id: Optional[str] = None,
        utterance: str = "",
    ) -> RecommendationResult:
        """Recommend directly from known signals, bypassing the readiness gate."""
        request = build_recommendation_request(signals, limit, recipient_id, utterance)
        return self.recommend(request)
