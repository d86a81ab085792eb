"""Deterministic highlight extraction and text trimming helpers.

Highlights are the sentences of the ranked passages that read best as
standalone statements. They drive the fallback composition (cards, highlight
list) and the auto-derived document title.
"""

import hashlib
import re
from collections.abc import Sequence

from pagegen.core.query_builder import DOMAIN_PHRASES
from pagegen.core.schemas_pages import Highlight, Passage

PLACEHOLDER_TITLE = "AI Draft (KB only)"

SENTENCE_MIN_CHARS = 50
SENTENCE_MAX_CHARS = 260
TITLE_MAX_CHARS = 90
MAX_LENGTH_BONUS = 3
LENGTH_BUCKET_CHARS = 120
AUTO_TITLE_MIN_CHARS = 24

NOISE_PHRASES: tuple[str, ...] = (
    "click here",
    "learn more",
    "read more",
    "cookie",
    "javascript",
    "subscribe",
    "sign up",
    "privacy policy",
    "terms of use",
    "all rights reserved",
)

_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.?!])\s+")
_BULLET_PAIR_RE = re.compile(r"(?:^|\s)[•·▪*-]\s+\S.*?\s[•·▪*-]\s+\S")
_ALL_CAPS_RE = re.compile(r"\b[A-Z]{2,}\b")
_TITLE_CLAUSE_RE = re.compile(r"^(.{50,90}?[.:;])\s")
_SENTENCE_CUT_RE = re.compile(r"^(.{80,})\.\s", re.DOTALL)
_FIRST_SENTENCE_RE = re.compile(r"^(.{20,200}?\.)\s")
_SLUG_RE = re.compile(r"[\W_]+")
_WS_RE = re.compile(r"\s+")
_TRAILING_PUNCT = " \t\n\r\x0b,;:"


def slugify(text: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to '-', default 'section'."""
    return _SLUG_RE.sub("-", (text or "").lower()).strip("-") or "section"


def make_title(sentence: str) -> str:
    """
    Derive a title of at most 90 chars from a sentence.

    Long sentences are cut at a clause boundary (., : or ;) between 50 and
    90 chars when one exists, otherwise hard-cut with an ellipsis. The first
    character is capitalized.
    """
    clean = sentence.strip()
    if len(clean) > TITLE_MAX_CHARS:
        cut = clean[:TITLE_MAX_CHARS]
        match = _TITLE_CLAUSE_RE.match(cut)
        if match:
            clean = match.group(1)
        else:
            clean = cut[: TITLE_MAX_CHARS - 1].rstrip(_TRAILING_PUNCT) + "…"
    return clean[:1].upper() + clean[1:]


def trim_to_sentence(text: str, max_chars: int) -> str:
    """
    Trim text to at most max_chars.

    Prefers the last sentence end (". ") at or after char 80 inside the
    window; otherwise hard-cuts and appends an ellipsis.
    """
    text = (text or "").strip()
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars]
    match = _SENTENCE_CUT_RE.match(cut)
    if match:
        return match.group(1) + "."
    return cut[: max_chars - 1].rstrip(_TRAILING_PUNCT) + "…"


def first_sentence(text: str) -> str:
    """First sentence of 20-200 chars ending in a period, else the first 200 chars."""
    text = _WS_RE.sub(" ", text or "").strip()
    if not text:
        return ""
    match = _FIRST_SENTENCE_RE.match(text)
    if match:
        return match.group(1)
    return text[:200]


def _is_noise(sentence: str) -> bool:
    lowered = sentence.lower()
    if "|" in sentence:
        return True
    if any(phrase in lowered for phrase in NOISE_PHRASES):
        return True
    if _BULLET_PAIR_RE.search(sentence):
        return True
    return len(_ALL_CAPS_RE.findall(sentence)) >= 3


def score_sentence(sentence: str) -> int:
    """+1 per domain keyword present, plus floor(len/120) capped at 3."""
    lowered = sentence.lower()
    keyword_hits = sum(1 for phrase in DOMAIN_PHRASES if phrase in lowered)
    return keyword_hits + min(MAX_LENGTH_BONUS, len(sentence) // LENGTH_BUCKET_CHARS)


def extract_highlights(texts: Sequence[str], max_items: int = 6) -> list[Highlight]:
    """
    Extract titled highlights from passage texts.

    Args:
        texts: Passage texts, best-ranked first
        max_items: Maximum highlights to return

    Returns:
        Up to max_items highlights, highest score first (ties keep input order)
    """
    candidates: list[tuple[str, int]] = []
    for text in texts:
        for sentence in _SENTENCE_SPLIT_RE.split(text or ""):
            sentence = sentence.strip()
            if not SENTENCE_MIN_CHARS <= len(sentence) <= SENTENCE_MAX_CHARS:
                continue
            if _is_noise(sentence):
                continue
            candidates.append((sentence, score_sentence(sentence)))

    candidates.sort(key=lambda c: c[1], reverse=True)

    highlights: list[Highlight] = []
    seen: set[str] = set()
    for sentence, score in candidates:
        if len(highlights) >= max_items:
            break
        key = hashlib.md5(_WS_RE.sub(" ", sentence.lower()).encode()).hexdigest()
        if key in seen:
            continue
        seen.add(key)
        title = make_title(sentence)
        highlights.append(Highlight(title=title, text=sentence, slug=slugify(title), score=score))

    return highlights


def auto_title(
    user_title: str | None,
    highlights: Sequence[Highlight],
    passages: Sequence[Passage],
    brief: str,
) -> str:
    """
    Pick the document title.

    Order: user title, top highlight title, first sentence of the best
    passage (when at least 24 chars, cut to 90), brief prefix, placeholder.
    """
    if user_title and user_title.strip():
        return user_title.strip()
    if highlights:
        return highlights[0].title
    if passages:
        sentence = first_sentence(passages[0].text)
        if len(sentence) >= AUTO_TITLE_MIN_CHARS:
            return sentence[:TITLE_MAX_CHARS]
    brief_prefix = (brief or "").strip()[:TITLE_MAX_CHARS].strip()
    return brief_prefix or PLACEHOLDER_TITLE
