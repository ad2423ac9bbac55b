"""Vector similarity search using pgvector."""

from typing import Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from giftmatch.core.embeddings import create_embedding
from giftmatch.models.database import Product
from giftmatch.models.domain import VectorHit


def search_similar_products(
    db: Session,
    embedding: List[float],
    limit: int = 10,
    budget_min: Optional[float] = None,
    budget_max: Optional[float] = None,
) -> list[VectorHit]:
    """Find products similar to a query embedding using cosine similarity.

    Only budget filters apply; category is deliberately left to semantic
    similarity so cross-category matches survive.

    Args:
        db: Database session
        embedding: 1536-dimensional query embedding vector
        limit: Maximum number of results to return
        budget_min: Optional lower price bound
        budget_max: Optional upper price bound

    Returns:
        Hits ordered by similarity (most similar first), score = 1 - cosine distance
    """
    distance = Product.embedding.cosine_distance(embedding)
    stmt = (
        select(Product.id, (1 - distance).label("similarity"))
        .where(Product.embedding.is_not(None))
        .order_by(distance)
        .limit(limit)
    )

    if budget_min is not None:
        stmt = stmt.where(Product.price >= budget_min)
    if budget_max is not None:
        stmt = stmt.where(Product.price <= budget_max)

    results = db.execute(stmt).all()
    return [VectorHit(id=str(pid), score=float(similarity)) for pid, similarity in results]


class PgVectorIndex:
    """Vector search port: embeds the query text, then searches pgvector."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        embed: Callable[[str], List[float]] = create_embedding,
    ):
        self.session_factory = session_factory
        self.embed = embed

    def search(
        self,
        text: str,
        k: int,
        budget_min: Optional[float] = None,
        budget_max: Optional[float] = None,
    ) -> list[VectorHit]:
        embedding = self.embed(text)
        with self.session_factory() as db:
            return search_similar_products(
                db, embedding, limit=k, budget_min=budget_min, budget_max=budget_max
            )
