"""API routes for direct recommendations."""

import logging

from fastapi import APIRouter, Depends

from giftmatch.api.dependencies import get_context_store, get_recommend_service, get_session_tracker
from giftmatch.models.schemas import RecommendRequest, RecommendResponse
from giftmatch.services.context_store import ContextStore, fill_missing
from giftmatch.services.preference_graph import recipient_id_for
from giftmatch.services.recommendation_engine import RecommendService
from giftmatch.services.session_tracker import SessionTracker

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/recommend", response_model=RecommendResponse)
def recommend(
    request: RecommendRequest,
    service: RecommendService = Depends(get_recommend_service),
    context_store: ContextStore = Depends(get_context_store),
    sessions: SessionTracker = Depends(get_session_tracker),
) -> RecommendResponse:
    """Recommend from explicit signals, bypassing the readiness gate.

    Missing budget bounds and categories are filled from the user's stored
    context first, then from the session's inferred intent. Products the
    session abandoned are left out of the results.

    Args:
        request: Known signals, optional free-text query and result limit
        service: Recommendation pipeline
        context_store: Stored per-user context
        sessions: Per-session intent inferred from events

    Returns:
        Ranked items with rationales, best first
    """
    signals = request.to_signals()
    recipient_id = None
    if request.user_id:
        scope = request.recipient_key.value if request.recipient_key else None
        recipient_id = recipient_id_for(request.user_id, scope)
        stored = context_store.load(request.user_id, scope)
        if stored is not None:
            signals = fill_missing(
                signals,
                stored.signals.budget_min,
                stored.signals.budget_max,
                stored.signals.categories,
            )

    excluded: set[str] = set()
    if request.session_id:
        session = sessions.recommendation_context(request.session_id)
        signals = fill_missing(signals, session.price_min, session.price_max, session.category_boost)
        excluded = set(session.exclude_ids)

    result = service.recommend_for_signals(
        signals,
        request.limit + len(excluded),
        recipient_id=recipient_id,
        utterance=request.query or "",
    )
    items = [item for item in result.items if item.product.id not in excluded]
    if excluded:
        logger.debug(f"Session {request.session_id}: excluded {len(result.items) - len(items)} abandoned products")
    return RecommendResponse(items=items[: request.limit], took_ms=result.took_ms)
