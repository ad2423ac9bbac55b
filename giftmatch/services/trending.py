"""Trending product detection from view/click events."""

import logging
import threading
import time
from typing import Callable, Optional

import redis
from sqlalchemy import text
from sqlalchemy.orm import Session

from giftmatch.constants import (
    TRENDING_CACHE_TTL_SECONDS,
    TRENDING_HISTORICAL_DAYS,
    TRENDING_MIN_ACTIVITY,
    TRENDING_RECENT_DAYS,
    TRENDING_SET_SIZE,
)

logger = logging.getLogger(__name__)

TRENDING_SQL = text(
    """
    WITH recent_activity AS (
        SELECT product_id, COUNT(*) AS recent_count
        FROM events
        WHERE event_type IN ('product_view', 'product_click')
          AND product_id IS NOT NULL
          AND created_at > NOW() - make_interval(days => :recent_days)
        GROUP BY product_id
    ),
    historical_activity AS (
        SELECT product_id, COUNT(*) AS historical_count
        FROM events
        WHERE event_type IN ('product_view', 'product_click')
          AND product_id IS NOT NULL
          AND created_at BETWEEN NOW() - make_interval(days => :historical_days)
                             AND NOW() - make_interval(days => :recent_days)
        GROUP BY product_id
    )
    SELECT
        r.product_id,
        r.recent_count,
        COALESCE(h.historical_count, 0) AS historical_count,
        CASE
            WHEN COALESCE(h.historical_count, 0) = 0 THEN r.recent_count::NUMERIC
            ELSE r.recent_count::NUMERIC / h.historical_count::NUMERIC
        END AS trend_score
    FROM recent_activity r
    LEFT JOIN historical_activity h ON r.product_id = h.product_id
    WHERE r.recent_count >= :min_activity
    ORDER BY trend_score DESC
    LIMIT :limit
    """
)


def get_trending_products(
    db: Session,
    recent_days: int = TRENDING_RECENT_DAYS,
    historical_days: int = TRENDING_HISTORICAL_DAYS,
    min_activity: int = TRENDING_MIN_ACTIVITY,
    limit: int = TRENDING_SET_SIZE,
) -> list[dict]:
    """Products whose recent activity spikes above their historical baseline.

    trend_score = recent / historical events, or the recent count when the
    product has no history.

    Returns:
        Rows of {product_id, recent_count, historical_count, trend_score}, best first
    """
    rows = db.execute(
        TRENDING_SQL,
        {
            "recent_days": recent_days,
            "historical_days": historical_days,
            "min_activity": min_activity,
            "limit": limit,
        },
    ).mappings().all()
    return [
        {
            "product_id": str(row["product_id"]),
            "recent_count": int(row["recent_count"]),
            "historical_count": int(row["historical_count"]),
            "trend_score": float(row["trend_score"]),
        }
        for row in rows
    ]


def get_trending_product_ids(db: Session, limit: int = TRENDING_SET_SIZE) -> list[str]:
    return [row["product_id"] for row in get_trending_products(db, limit=limit)]


class RedisTrendingSignal:
    """Trending port reading the id set published by the refresh task."""

    def __init__(self, client: redis.Redis, key: str):
        self.client = client
        self.key = key

    def trending_ids(self) -> set[str]:
        return set(self.client.smembers(self.key))

    def publish(self, product_ids: list[str], ttl_seconds: Optional[int] = None) -> None:
        """Atomically replace the trending set."""
        pipe = self.client.pipeline()
        pipe.delete(self.key)
        if product_ids:
            pipe.sadd(self.key, *product_ids)
            if ttl_seconds:
                pipe.expire(self.key, ttl_seconds)
        pipe.execute()


class TrendingCache:
    """In-process trending port: reloads at most once per TTL.

    Safe for concurrent readers; a failed reload keeps the previous set.
    """

    def __init__(
        self,
        loader: Callable[[], list[str]],
        ttl_seconds: int = TRENDING_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.loader = loader
        self.ttl = ttl_seconds
        self.clock = clock
        self._ids: frozenset[str] = frozenset()
        self._loaded_at: Optional[float] = None
        self._lock = threading.Lock()

    def trending_ids(self) -> set[str]:
        now = self.clock()
        with self._lock:
            if self._loaded_at is None or now - self._loaded_at > self.ttl:
                try:
                    self._ids = frozenset(self.loader())
                    logger.info(f"Trending cache refreshed: {len(self._ids)} products")
                except Exception as e:
                    logger.warning(f"Trending refresh failed, keeping previous set: {e}")
                self._loaded_at = now
            return set(self._ids)

    def clear(self) -> None:
        with self._lock:
            self._ids = frozenset()
            self._loaded_at = None
