"""Relevance and recency ranking, plus grouping of passages by source domain."""

import re

from pagegen.core.passage_retrieval import source_host
from pagegen.core.schemas_pages import Passage

RECENCY_PENALTY_PER_YEAR = 0.25
MAX_RECENCY_PENALTY = 2.0

DEFAULT_SOURCE_LABEL = "Source"
DEFAULT_KB_LABEL = "Knowledge Base"

_YEAR_RE = re.compile(r"\b((?:19|20)\d{2})\b")


def recency_penalty(text: str, reference_year: int) -> float:
    """
    Penalty for stale passages.

    Uses the most recent four-digit year (1900-2099) mentioned in the text:
    min(0.25 * years_since, 2.0). No year, or a year after reference_year,
    means no penalty.
    """
    years = [int(y) for y in _YEAR_RE.findall(text or "")]
    if not years:
        return 0.0
    age = max(0, reference_year - max(years))
    return min(RECENCY_PENALTY_PER_YEAR * age, MAX_RECENCY_PENALTY)


def adjusted_score(passage: Passage, reference_year: int) -> float:
    """Backend score (0 when absent) minus the recency penalty."""
    return (passage.score or 0.0) - recency_penalty(passage.text, reference_year)


def rank_passages(passages: list[Passage], reference_year: int) -> list[Passage]:
    """
    Return new Passage records sorted by adjusted score, descending.

    The sort is stable: equal adjusted scores keep their input order.
    """
    scored = [
        p.model_copy(update={"adjusted_score": adjusted_score(p, reference_year)})
        for p in passages
    ]
    return sorted(scored, key=lambda p: p.adjusted_score, reverse=True)


def domain_label(source: str | None) -> str:
    """Grouping label: URL host, else "Source" for opaque ids, else "Knowledge Base"."""
    host = source_host(source)
    if host:
        return host
    return DEFAULT_SOURCE_LABEL if source else DEFAULT_KB_LABEL


def group_by_source(passages: list[Passage], cap: int = 2) -> dict[str, list[Passage]]:
    """
    Bucket passages by source domain.

    Buckets appear in order of their first passage; within a bucket passages
    are sorted by adjusted score (stable) and capped at `cap`.

    Args:
        passages: Ranked passages
        cap: Max passages per domain

    Returns:
        Mapping domain label -> passages
    """
    buckets: dict[str, list[Passage]] = {}
    for passage in passages:
        buckets.setdefault(domain_label(passage.source), []).append(passage)

    return {
        domain: sorted(items, key=lambda p: p.adjusted_score, reverse=True)[: max(cap, 0)]
        for domain, items in buckets.items()
    }
