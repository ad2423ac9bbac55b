"""Session intent inferred from product views and clicks."""

import logging
import math
import time
from typing import Callable, Optional

from giftmatch.constants import (
    MAX_CATEGORIES,
    SESSION_ABANDON_MIN_VIEWS,
    SESSION_MAX_EXCLUDED,
    SESSION_PRICE_SPREAD,
)
from giftmatch.core.redis_client import KeyValueStore
from giftmatch.models.domain import SessionContext, SessionState
from giftmatch.services.ports import Catalog

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "session"


class SessionTracker:
    """Tracks one browsing session per id and keeps its inferred intent current.

    Every recorded event re-derives the session's intent:

    - Clicked products give the preferred categories and a price range
      widened by SESSION_PRICE_SPREAD on each side.
    - Once SESSION_ABANDON_MIN_VIEWS products were viewed without a click,
      the most recent SESSION_MAX_EXCLUDED of them are excluded from results.

    Sessions expire ``ttl_seconds`` after their last event.
    """

    def __init__(
        self,
        store: KeyValueStore,
        catalog: Catalog,
        ttl_seconds: int = 1800,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.catalog = catalog
        self.ttl = ttl_seconds or None
        self.clock = clock

    @staticmethod
    def key_for(session_id: str) -> str:
        return f"{SESSION_KEY_PREFIX}:{session_id}"

    def get(self, session_id: str) -> Optional[SessionState]:
        key = self.key_for(session_id)
        try:
            data = self.store.get(key)
            if data is None:
                return None
            return SessionState.model_validate(data)
        except (ValueError, TypeError) as e:
            logger.warning(f"Discarding malformed session {key}: {e}")
            return None

    def record(
        self,
        session_id: str,
        event_type: str,
        product_id: str,
        user_id: Optional[str] = None,
    ) -> SessionState:
        """Add one product_view or product_click to the session and re-infer intent."""
        now = self.clock()
        state = self.get(session_id) or SessionState(session_id=session_id, started_at=now)
        state.user_id = state.user_id or user_id
        state.interaction_count += 1
        state.last_activity_at = now

        if event_type == "product_click":
            if product_id not in state.clicked:
                state.clicked.append(product_id)
        elif product_id not in state.viewed:
            state.viewed.append(product_id)

        self._infer(state)
        self.store.set(self.key_for(session_id), state.model_dump(mode="json"), ttl=self.ttl)
        logger.debug(
            f"Session {session_id}: {event_type} {product_id} "
            f"({len(state.clicked)} clicked, {len(state.abandoned)} abandoned)"
        )
        return state

    def _infer(self, state: SessionState) -> None:
        categories: list[str] = []
        prices: list[float] = []
        for product_id in state.clicked:
            try:
                product = self.catalog.get_by_id(product_id)
            except Exception as e:
                logger.warning(f"Catalog lookup failed for clicked product {product_id}: {e}")
                continue
            if product is None:
                continue
            if product.category and product.category not in categories:
                categories.append(product.category)
            prices.append(product.price)

        state.categories = categories[:MAX_CATEGORIES]
        if prices:
            state.price_min = math.floor(min(prices) * (1 - SESSION_PRICE_SPREAD))
            state.price_max = math.ceil(max(prices) * (1 + SESSION_PRICE_SPREAD))

        viewed_not_clicked = [pid for pid in state.viewed if pid not in state.clicked]
        if len(viewed_not_clicked) >= SESSION_ABANDON_MIN_VIEWS:
            state.abandoned = viewed_not_clicked[-SESSION_MAX_EXCLUDED:]
        else:
            state.abandoned = []

    def recommendation_context(self, session_id: str) -> SessionContext:
        """Adjustments for a recommendation request; empty for unknown sessions."""
        state = self.get(session_id)
        if state is None:
            return SessionContext()
        return SessionContext(
            category_boost=state.categories,
            price_min=state.price_min,
            price_max=state.price_max,
            exclude_ids=state.abandoned,
        )
