"""Search query derivation from a free-text brief.

Three strategies:
- build_query(): frequency-ranked keywords (single query)
- build_domain_query(): fixed domain vocabulary match, "Topic: ..." label
- build_query_variants(): keyword query + quoted phrases + raw brief prefix

extract_salient_terms() feeds the term-alignment filter in passage_retrieval.
"""

import re

from pagegen.core.config import QueryStrategy

# Fixed stopword list for keyword queries
STOP_WORDS = {
    "the", "a", "an", "and", "or", "of", "in", "to", "for", "with", "on",
    "at", "by", "from", "as", "is", "are", "was", "were", "this", "that",
    "these", "those", "it", "its", "be", "can", "may", "any", "more",
    "most", "about", "how", "what",
}

# Additional words that are never useful as alignment terms
ALIGNMENT_STOP_WORDS = STOP_WORDS | {
    "does", "do", "did", "which", "who", "when", "where", "why", "should",
    "must", "will", "would", "could", "need", "needs", "our", "your", "their",
    "page", "document", "draft", "write", "create", "explain", "describe",
    "overview", "summary", "guide", "information", "please",
}

# Domain vocabulary (mortgage selling-guide topics), longest phrases first
DOMAIN_PHRASES: tuple[str, ...] = (
    "rental income",
    "schedule e",
    "form 1007",
    "form 1025",
    "tax return",
    "lease agreement",
    "underwriting",
    "documentation",
    "eligibility",
    "appraisal",
    "borrower",
    "lender",
    "income",
    "lease",
    "property",
)

DEFAULT_DOMAIN_PHRASES: tuple[str, ...] = ("rental income", "documentation", "underwriting")

DOMAIN_QUERY_LABEL = "Topic: "

MAX_QUERY_TERMS = 10
MAX_QUERY_CHARS = 240
MAX_RAW_PREFIX_CHARS = 480
MAX_QUOTED_PHRASES = 3
MIN_TOKEN_CHARS = 3

_PUNCT_RE = re.compile(r"[^\w\s]+")
_QUOTED_RE = re.compile(r'"([^"]{4,120})"')
_WS_RE = re.compile(r"\s+")


def _tokens(text: str) -> list[str]:
    cleaned = _PUNCT_RE.sub(" ", (text or "").lower())
    return [t for t in cleaned.split() if len(t) >= MIN_TOKEN_CHARS and t not in STOP_WORDS]


def _clip_at_word(text: str, limit: int) -> str:
    """Cut text to limit chars at the last whitespace that fits; hard cut for one long word."""
    if len(text) <= limit:
        return text
    head = text[:limit]
    if head[-1].isspace() or text[limit].isspace():
        return head.rstrip()
    parts = head.rsplit(None, 1)
    return parts[0] if len(parts) > 1 else head


def build_query(brief: str) -> str:
    """
    Build a keyword query from a brief.

    Tokens are lowercased, stripped of punctuation, filtered against the
    stopword list and ranked by frequency (first occurrence breaks ties).

    Args:
        brief: Free-text brief

    Returns:
        Up to 10 space-joined keywords cut at a word boundary within 240
        chars, or the trimmed brief when no keyword survives
    """
    counts: dict[str, int] = {}
    for token in _tokens(brief):
        counts[token] = counts.get(token, 0) + 1

    # dict preserves first-seen order, sorted() is stable
    ranked = sorted(counts, key=lambda t: counts[t], reverse=True)[:MAX_QUERY_TERMS]
    if not ranked:
        return _clip_at_word((brief or "").strip(), MAX_QUERY_CHARS)
    return _clip_at_word(" ".join(ranked), MAX_QUERY_CHARS)


def match_domain_phrases(text: str) -> list[str]:
    """Domain phrases present in text as whole words, skipping words already inside a longer match."""
    lowered = _WS_RE.sub(" ", (text or "").lower())
    matched: list[str] = []
    for phrase in DOMAIN_PHRASES:
        if any(phrase in m.split() for m in matched):
            continue
        if re.search(rf"\b{re.escape(phrase)}\b", lowered):
            matched.append(phrase)
    return matched


def build_domain_query(brief: str) -> str:
    """Match the brief against the domain vocabulary; "Topic: a, b" or the default set."""
    matched = match_domain_phrases(brief)
    phrases = matched or list(DEFAULT_DOMAIN_PHRASES)
    return DOMAIN_QUERY_LABEL + ", ".join(phrases)


def extract_quoted_phrases(brief: str) -> list[str]:
    """Return up to 3 double-quoted substrings (4-120 chars each)."""
    phrases = []
    for match in _QUOTED_RE.finditer(brief or ""):
        phrase = match.group(1).strip()
        if phrase:
            phrases.append(phrase)
        if len(phrases) >= MAX_QUOTED_PHRASES:
            break
    return phrases


def build_query_variants(brief: str) -> list[str]:
    """
    Build the multi-variant query list.

    Variants, in order: the keyword query, the quoted phrases (re-quoted and
    joined), and the raw brief prefix. Empty and duplicate variants are
    dropped; at least one variant is always returned.

    Args:
        brief: Free-text brief

    Returns:
        Non-empty list of distinct query strings
    """
    candidates = [build_query(brief)]

    quoted = extract_quoted_phrases(brief)
    if quoted:
        candidates.append(" ".join(f'"{q}"' for q in quoted))

    candidates.append((brief or "").strip()[:MAX_RAW_PREFIX_CHARS].strip())

    variants: list[str] = []
    for candidate in candidates:
        candidate = candidate.strip()
        if candidate and candidate not in variants:
            variants.append(candidate)

    if not variants:
        # Whitespace-only brief: fall back to the vocabulary defaults
        variants.append(build_domain_query(""))
    return variants


def queries_for_strategy(brief: str, strategy: QueryStrategy) -> list[str]:
    """Queries to issue for the configured strategy."""
    if strategy == "vocabulary":
        return [build_domain_query(brief)]
    return build_query_variants(brief)


def extract_salient_terms(brief: str, max_terms: int = 6) -> list[str]:
    """
    Extract the terms a relevant passage is expected to mention.

    Domain phrases found in the brief come first; remaining slots are filled
    with the highest-scoring single words (domain words boosted, repeated
    mentions accumulated).

    Args:
        brief: Free-text brief
        max_terms: Maximum number of terms

    Returns:
        Lowercased terms, most salient first
    """
    if not brief:
        return []

    lowered = _WS_RE.sub(" ", brief.lower())
    terms = [phrase for phrase in match_domain_phrases(brief) if " " in phrase]

    domain_words = {p for p in DOMAIN_PHRASES if " " not in p}
    scored: dict[str, int] = {}
    for word in _PUNCT_RE.sub(" ", lowered).split():
        if len(word) < 4 or word in ALIGNMENT_STOP_WORDS:
            continue
        score = 1
        if word in domain_words:
            score += 5
        if any(c.isdigit() for c in word):
            score += 1
        scored[word] = scored.get(word, 0) + score

    for word in sorted(scored, key=lambda w: scored[w], reverse=True):
        if any(word in phrase.split() for phrase in terms):
            continue
        terms.append(word)

    return terms[:max_terms]
