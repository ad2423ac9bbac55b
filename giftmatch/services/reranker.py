"""Cohere rerank client for cross-encoder relevance scoring."""

import logging
from typing import Optional

import requests

from giftmatch.models.domain import Product, RerankResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10


def rerank_document(product: Product) -> str:
    """Text sent to the reranker for one product."""
    parts = [product.title, product.description, product.category, product.vendor]
    return " | ".join(p for p in parts if p)


class CohereReranker:
    """Reranker port backed by the Cohere v2 rerank endpoint."""

    enabled = True

    def __init__(
        self,
        api_key: str,
        model: str = "rerank-english-v3.0",
        base_url: str = "https://api.cohere.com",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def rerank(self, query: str, documents: list[str], top_n: int) -> list[RerankResult]:
        """Score documents against the query.

        Args:
            query: Search text
            documents: One string per candidate, in candidate order
            top_n: Number of results to return

        Returns:
            Results ordered by relevance (highest first), indexes into ``documents``

        Raises:
            RuntimeError: If the request fails or the response is malformed
        """
        if not documents:
            return []

        payload = {
            "model": self.model,
            "query": query,
            "documents": documents,
            "top_n": max(1, min(int(top_n), len(documents))),
        }
        try:
            response = self.session.post(
                f"{self.base_url}/v2/rerank",
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            raise RuntimeError(f"Cohere rerank request failed: {e}") from e

        results = []
        for row in body.get("results", []):
            index = row.get("index")
            if isinstance(index, int) and 0 <= index < len(documents):
                results.append(RerankResult(index=index, relevance_score=float(row.get("relevance_score", 0.0))))

        logger.debug(f"Reranked {len(documents)} documents, {len(results)} results")
        return results
