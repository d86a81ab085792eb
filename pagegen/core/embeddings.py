"""OpenAI embeddings for KB query vectors."""

from functools import lru_cache

import httpx
from openai import OpenAI

from pagegen.core.config import get_settings
from pagegen.core.logging import get_logger

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def _get_client() -> OpenAI:
    """OpenAI client with the shared backend timeouts and retry budget."""
    settings = get_settings()
    return OpenAI(
        api_key=settings.OPENAI_API_KEY,
        timeout=httpx.Timeout(
            settings.BACKEND_TIMEOUT_S, connect=settings.BACKEND_CONNECT_TIMEOUT_S
        ),
        max_retries=settings.BACKEND_MAX_RETRIES,
    )


def embed_query(text: str) -> list[float]:
    """
    Embed a single query string.

    Args:
        text: Query text

    Returns:
        Embedding vector

    Raises:
        ValueError: If the text is empty or the dimension doesn't match EMBEDDING_DIM
        openai.OpenAIError: If the API call fails
    """
    if not text or not text.strip():
        raise ValueError("Cannot embed an empty query")

    settings = get_settings()
    response = _get_client().embeddings.create(model=settings.EMBEDDING_MODEL, input=[text])
    embedding = response.data[0].embedding

    if len(embedding) != settings.EMBEDDING_DIM:
        raise ValueError(
            f"Embedding dimension mismatch: expected {settings.EMBEDDING_DIM}, got {len(embedding)}"
        )

    logger.debug(f"Embedded query ({len(text)} chars) with {settings.EMBEDDING_MODEL}")
    return embedding
