"""Celery tasks for background processing."""

import logging

from sqlalchemy import select

from giftmatch.config import get_settings
from giftmatch.constants import EMBEDDING_BATCH_SIZE, MAX_DESCRIPTION_LENGTH
from giftmatch.core.database import SessionLocal
from giftmatch.core.embeddings import create_embeddings_batch, format_product_text
from giftmatch.core.redis_client import redis_client
from giftmatch.models.database import Product
from giftmatch.services.trending import RedisTrendingSignal, get_trending_product_ids
from giftmatch.workers.celery_app import celery_app

logger = logging.getLogger(__name__)
settings = get_settings()


@celery_app.task(name="giftmatch.workers.tasks.refresh_trending")
def refresh_trending() -> dict:
    """Recompute trending products from recent events and publish them to Redis.

    The published set is read by the recommendation pipeline's trending boost.
    It expires after two refresh intervals, so a stalled beat scheduler stops
    boosting stale products.

    Returns:
        {'status': 'completed' | 'failed', 'count': int, 'error': str | None}
    """
    db = SessionLocal()
    try:
        product_ids = get_trending_product_ids(db)
        signal = RedisTrendingSignal(redis_client, settings.trending_redis_key)
        signal.publish(product_ids, ttl_seconds=settings.trending_refresh_seconds * 2)
        logger.info(f"Published {len(product_ids)} trending products")
        return {"status": "completed", "count": len(product_ids), "error": None}
    except Exception as e:
        logger.error(f"Failed to refresh trending products: {e}", exc_info=True)
        return {"status": "failed", "count": 0, "error": str(e)}
    finally:
        db.close()


@celery_app.task(name="giftmatch.workers.tasks.index_product_embeddings", bind=True)
def index_product_embeddings(self, batch_size: int = EMBEDDING_BATCH_SIZE) -> dict:
    """Generate embeddings for every product that does not have one yet.

    Products are embedded in batches; a failed batch is logged and skipped so
    the remaining batches still run.

    Returns:
        {'status': 'completed' | 'failed', 'embedded': int, 'failed': int, 'error': str | None}
    """
    db = SessionLocal()
    embedded = 0
    failed = 0
    try:
        products = db.scalars(
            select(Product).where(Product.embedding.is_(None)).order_by(Product.id)
        ).all()
        total = len(products)
        logger.info(f"Embedding {total} products in batches of {batch_size}")

        for start in range(0, total, batch_size):
            batch = products[start:start + batch_size]
            texts = [
                format_product_text(
                    title=p.title,
                    description=(p.description or "")[:MAX_DESCRIPTION_LENGTH] or None,
                    category=p.category.name if p.category else None,
                )
                for p in batch
            ]
            try:
                vectors = create_embeddings_batch(texts)
            except Exception as e:
                failed += len(batch)
                logger.error(f"Embedding batch starting at {start} failed: {e}", exc_info=True)
                continue

            for product, vector in zip(batch, vectors):
                product.embedding = vector
            db.commit()
            embedded += len(batch)
            logger.info(f"Embedded {embedded}/{total} products")

        return {"status": "completed", "embedded": embedded, "failed": failed, "error": None}

    except Exception as e:
        db.rollback()
        logger.error(f"Critical error during embedding backfill: {e}", exc_info=True)
        return {"status": "failed", "embedded": embedded, "failed": failed, "error": str(e)}

    finally:
        db.close()
