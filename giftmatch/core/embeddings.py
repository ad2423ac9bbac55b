"""OpenAI client and product/query embeddings, traced through Langfuse."""

from functools import lru_cache
from typing import List, Optional

from langfuse.openai import OpenAI

from giftmatch.config import get_settings

settings = get_settings()

EMBEDDING_MODEL = settings.embedding_model
EMBEDDING_DIMENSIONS = 1536

# Hard limit on inputs per embeddings request
MAX_BATCH_INPUTS = 2048


@lru_cache
def get_openai_client() -> OpenAI:
    """OpenAI client wrapped by Langfuse, so every call is traced.

    Created on first use so modules import without an API key configured.
    """
    return OpenAI(api_key=settings.openai_api_key)


def create_embedding(text: str) -> List[float]:
    """Embed one search query for nearest-neighbour lookup."""
    response = get_openai_client().embeddings.create(model=EMBEDDING_MODEL, input=text)
    return response.data[0].embedding


def create_embeddings_batch(texts: List[str]) -> List[List[float]]:
    """Embed many product texts in one request.

    Args:
        texts: Product texts from format_product_text (at most 2048)

    Returns:
        One 1536-dim vector per text, in input order
    """
    if len(texts) > MAX_BATCH_INPUTS:
        raise ValueError(f"At most {MAX_BATCH_INPUTS} texts per embeddings request, got {len(texts)}")

    response = get_openai_client().embeddings.create(model=EMBEDDING_MODEL, input=texts)
    ordered = sorted(response.data, key=lambda item: item.index)
    return [item.embedding for item in ordered]


def format_product_text(
    title: str,
    description: Optional[str] = None,
    category: Optional[str] = None,
) -> str:
    """Format product fields into text for embedding.

    Example:
        >>> format_product_text("Yoga Mat", "Cork, non-slip", "Sports & Outdoors")
        'Yoga Mat. Cork, non-slip. Category: Sports & Outdoors'
    """
    parts = [title]
    if description:
        parts.append(description)
    if category:
        parts.append(f"Category: {category}")
    return ". ".join(parts)
