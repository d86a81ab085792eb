"""Multi-query retrieval with sanitization, fingerprint dedup and term alignment."""

import hashlib
import logging
import re
from collections.abc import Callable, Iterable, Sequence
from typing import Any
from urllib.parse import urlparse

from pydantic import ValidationError

from pagegen.core.logging import get_logger, log_with_context
from pagegen.core.schemas_pages import Passage
from pagegen.core.text_sanitizer import sanitize_kb_text

logger = get_logger(__name__)

# retrieve(collection_id, query_text, top_k) -> rows ({text|content, score?, source?} or Passage)
RetrieveFn = Callable[[str, str, int], Iterable[Any]]

_WS_RE = re.compile(r"\s+")


def passage_fingerprint(text: str, source: str | None) -> str:
    """md5 of lowercased, whitespace-collapsed text joined with the source id."""
    normalized = _WS_RE.sub(" ", (text or "").lower()).strip()
    return hashlib.md5(f"{normalized}|{source or ''}".encode()).hexdigest()


def _to_passage(row: Any) -> Passage:
    if isinstance(row, Passage):
        return row.model_copy()
    return Passage.model_validate(row)


def retrieve_merged(
    queries: Sequence[str],
    top_k: int,
    *,
    collection_id: str,
    retrieve_fn: RetrieveFn,
    relaxed: bool = False,
) -> list[Passage]:
    """
    Retrieve passages for every query variant and merge them.

    Each backend call is isolated: a variant whose call raises contributes
    nothing and the merge continues. Rows are validated into Passage records
    (rows without text are dropped), text is sanitized, empties are dropped,
    and duplicates by fingerprint are removed with the first occurrence kept.

    Args:
        queries: Query variants, issued in order
        top_k: Passages requested per variant
        collection_id: Knowledge base identifier
        retrieve_fn: Retrieval backend callable
        relaxed: Sanitize with relaxed thresholds

    Returns:
        Deduplicated, sanitized passages in retrieval order
    """
    merged: list[Passage] = []
    seen: set[str] = set()

    for query in queries:
        try:
            rows = list(retrieve_fn(collection_id, query, top_k) or [])
        except Exception as e:
            log_with_context(
                logger,
                logging.WARNING,
                "Retrieval failed for query variant",
                query=query[:80],
                error_type=type(e).__name__,
                error=str(e)[:200],
            )
            continue

        kept = 0
        for row in rows:
            try:
                passage = _to_passage(row)
            except ValidationError as e:
                log_with_context(
                    logger,
                    logging.WARNING,
                    "Dropping malformed retrieval row",
                    error_count=e.error_count(),
                )
                continue

            text = sanitize_kb_text(passage.text, relaxed=relaxed)
            if not text:
                continue

            fingerprint = passage_fingerprint(text, passage.source)
            if fingerprint in seen:
                continue
            seen.add(fingerprint)
            merged.append(passage.model_copy(update={"text": text}))
            kept += 1

        logger.debug(f"Query variant returned {len(rows)} rows, kept {kept}")

    return merged


def align_to_terms(passages: list[Passage], terms: Sequence[str]) -> list[Passage]:
    """
    Keep passages whose text mentions at least one term (case-insensitive).

    Never starves the pipeline: when no passage matches (or there are no
    terms) the input list is returned unchanged.
    """
    needles = [t.lower() for t in terms if t and t.strip()]
    if not needles or not passages:
        return passages

    aligned = [p for p in passages if any(n in p.text.lower() for n in needles)]
    return aligned or passages


def _strictly_aligned(passages: list[Passage], terms: Sequence[str]) -> list[Passage]:
    needles = [t.lower() for t in terms if t and t.strip()]
    return [p for p in passages if any(n in p.text.lower() for n in needles)]


def retrieve_aligned(
    queries: Sequence[str],
    terms: Sequence[str],
    top_k: int,
    *,
    collection_id: str,
    retrieve_fn: RetrieveFn,
    relaxed: bool = False,
) -> list[Passage]:
    """
    Two-phase retrieval with term alignment.

    Phase 1 retrieves with the broad queries and keeps passages mentioning a
    salient term. If none do, phase 2 re-issues retrieval with only the terms
    as a tight query and aligns again; when that is still empty the unfiltered
    tight result is used, and when the tight query returns nothing the broad
    result is used.

    Args:
        queries: Broad query variants
        terms: Salient terms from the brief
        top_k: Passages requested per call
        collection_id: Knowledge base identifier
        retrieve_fn: Retrieval backend callable
        relaxed: Sanitize with relaxed thresholds

    Returns:
        Passages (possibly unfiltered, never starved by alignment)
    """
    broad = retrieve_merged(
        queries, top_k, collection_id=collection_id, retrieve_fn=retrieve_fn, relaxed=relaxed
    )
    if not terms:
        return broad

    aligned = _strictly_aligned(broad, terms)
    if aligned:
        return aligned

    tight_query = " ".join(terms)
    logger.info(
        f"No broad passage mentions a salient term, retrying with tight query '{tight_query}'"
    )
    tight = retrieve_merged(
        [tight_query], top_k, collection_id=collection_id, retrieve_fn=retrieve_fn, relaxed=relaxed
    )
    return _strictly_aligned(tight, terms) or tight or broad


def source_host(source: str | None) -> str | None:
    """Lowercased host (without www.) of a URL source, or None for opaque ids."""
    if not source or "://" not in source:
        return None
    host = (urlparse(source).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host or None


def filter_allowed_domains(passages: list[Passage], allowed: Sequence[str]) -> list[Passage]:
    """
    Keep passages whose source host is on the allowlist (exact host or subdomain).

    An empty allowlist disables the filter. Passages with no URL host are kept.
    Unlike term alignment, this filter may legitimately return nothing.
    """
    if not allowed:
        return passages

    kept = []
    for passage in passages:
        host = source_host(passage.source)
        if host is None or any(host == d or host.endswith("." + d) for d in allowed):
            kept.append(passage)

    if len(kept) < len(passages):
        logger.info(f"Allowlist removed {len(passages) - len(kept)} of {len(passages)} passages")
    return kept
