"""Retrieval backend: vector search over a KB collection."""

from typing import Any

from pagegen.core.config import get_settings
from pagegen.core.embeddings import embed_query
from pagegen.core.logging import get_logger
from pagegen.db.supabase_client import get_supabase

logger = get_logger(__name__)

MIN_TOP_K = 1
MAX_TOP_K = 100


def clamp_top_k(top_k: int) -> int:
    """Clamp the requested result count to [1, 100]."""
    return max(MIN_TOP_K, min(MAX_TOP_K, int(top_k)))


def search_kb_passages(collection_id: str, query: str, top_k: int) -> list[dict[str, Any]]:
    """
    Search a KB collection for passages similar to the query.

    Rows come back as stored by the match function:
    {content, similarity, metadata: {source|url|document_url, ...}}.
    Mapping into Passage records happens in the pipeline.

    Args:
        collection_id: Knowledge base identifier
        query: Query text (embedded here)
        top_k: Number of results (clamped to 1..100)

    Returns:
        Raw result rows

    Raises:
        Exception: If embedding or the database call fails
    """
    settings = get_settings()
    match_count = clamp_top_k(top_k)
    query_embedding = embed_query(query)

    try:
        response = (
            get_supabase()
            .rpc(
                settings.KB_MATCH_RPC,
                {
                    "query_embedding": query_embedding,
                    "match_count": match_count,
                    "filter_collection_id": collection_id,
                },
            )
            .execute()
        )
    except Exception as e:
        logger.error(f"KB search failed for collection {collection_id}: {e}")
        raise

    rows = response.data or []
    logger.info(
        f"KB search returned {len(rows)} passages",
        extra={"collection_id": collection_id, "match_count": match_count},
    )
    return rows
