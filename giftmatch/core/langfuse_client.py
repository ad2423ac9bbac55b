"""Langfuse client for observability and tracing."""

import logging

from langfuse import Langfuse, get_client

from giftmatch.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def init_langfuse() -> Langfuse:
    """Configure the process-wide Langfuse client from settings.

    Without keys the client stays disabled and @observe() is a no-op, so the
    service runs the same with or without tracing.
    """
    enabled = bool(settings.langfuse_public_key and settings.langfuse_secret_key)
    Langfuse(
        public_key=settings.langfuse_public_key,
        secret_key=settings.langfuse_secret_key,
        host=settings.langfuse_host,
        tracing_enabled=enabled,
    )
    logger.info(f"Langfuse tracing {'enabled' if enabled else 'disabled'}")
    return get_client()
