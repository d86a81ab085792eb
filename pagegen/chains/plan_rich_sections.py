"""LLM chain that plans page sections (intro, highlights, cards, quotes) from KB passages."""

import json
import re
from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError

from pagegen.core.backends import GenerateFn
from pagegen.core.highlights import trim_to_sentence
from pagegen.core.llm import parse_llm_json_dict
from pagegen.core.logging import get_logger
from pagegen.core.passage_ranking import domain_label
from pagegen.core.schemas_pages import (
    CARD_COLORS,
    HIGHLIGHT_MAX_CHARS,
    HIGHLIGHT_MIN_CHARS,
    INTRO_MAX_CHARS,
    MAX_CARDS,
    MAX_PLAN_HIGHLIGHTS,
    MAX_QUOTES,
    CompositionPlan,
    Passage,
    PlanCard,
    PlanQuote,
)

logger = get_logger(__name__)

MAX_PROMPT_PASSAGES = 14
MAX_PASSAGE_CHARS = 700

# ruff: noqa: E501
SYSTEM_PROMPT = """You are a content designer building a short knowledge page from knowledge-base passages.

You MUST output ONLY valid JSON matching this exact schema:

{
  "intro": "string - optional 1-3 sentence introduction",
  "highlights": ["string - 40 to 260 characters each"],
  "cards": [
    {
      "title": "string - 10 to 90 characters",
      "blurb": "string - 40 to 240 characters",
      "color": "slate|blue|green|amber|rose"
    }
  ],
  "quotes": [
    {
      "text": "string - 40 to 240 characters, verbatim from a passage",
      "domain": "string - the passage domain, optional"
    }
  ]
}

CRITICAL RULES:
1. Use ONLY the supplied passages. Do not invent facts, links, numbers, dates or form names.
2. Quotes MUST be copied verbatim from a passage (light trimming at the start or end is allowed).
3. At most {max_highlights} highlights, at most 4 cards, at most 4 quotes.
4. If the passages do not support a section, return an empty array for it.
5. Output ONLY the JSON object, no markdown, no explanation, no preamble."""

_WS_RE = re.compile(r"\s+")
_QUOTE_EDGE_CHARS = " \"'“”‘’.…"


def _build_payload(brief: str, passages: Sequence[Passage], max_items: int) -> str:
    packed = [
        {
            "id": i + 1,
            "domain": domain_label(p.source),
            "text": p.text[:MAX_PASSAGE_CHARS],
        }
        for i, p in enumerate(passages[:MAX_PROMPT_PASSAGES])
    ]
    return json.dumps(
        {"brief": brief, "max_highlights": max_items, "passages": packed},
        ensure_ascii=False,
        indent=2,
    )


def _clean_str(value: Any) -> str:
    return _WS_RE.sub(" ", value).strip() if isinstance(value, str) else ""


def _is_grounded_quote(text: str, passages: Sequence[Passage]) -> bool:
    """True when the quote (minus edge quotes/ellipses) appears in a passage."""
    needle = _WS_RE.sub(" ", text.strip(_QUOTE_EDGE_CHARS)).lower()
    if not needle:
        return False
    return any(needle in _WS_RE.sub(" ", p.text).lower() for p in passages)


def normalize_plan(
    data: dict[str, Any],
    passages: Sequence[Passage],
    max_items: int,
) -> CompositionPlan | None:
    """
    Coerce a raw model response into a bounded CompositionPlan.

    Strings are whitespace-trimmed; entries missing required fields or
    outside the length bounds are dropped; arrays are clamped to their max
    counts; quotes that do not appear in any passage are dropped.

    Args:
        data: Parsed JSON object from the model
        passages: Passages the model was given
        max_items: Highlight cap requested from the model

    Returns:
        CompositionPlan, or None when nothing usable remains
    """
    intro = _clean_str(data.get("intro"))
    intro = trim_to_sentence(intro, INTRO_MAX_CHARS) if intro else None

    highlight_cap = max(0, min(max_items, MAX_PLAN_HIGHLIGHTS))
    highlights = []
    for item in data.get("highlights") or []:
        text = _clean_str(item)
        if HIGHLIGHT_MIN_CHARS <= len(text) <= HIGHLIGHT_MAX_CHARS:
            highlights.append(text)
    highlights = highlights[:highlight_cap]

    cards: list[PlanCard] = []
    for item in data.get("cards") or []:
        if not isinstance(item, dict):
            continue
        color = item.get("color")
        try:
            cards.append(
                PlanCard(
                    title=_clean_str(item.get("title")),
                    blurb=_clean_str(item.get("blurb")),
                    color=color if color in CARD_COLORS else None,
                )
            )
        except ValidationError:
            continue
    cards = cards[:MAX_CARDS]

    quotes: list[PlanQuote] = []
    for item in data.get("quotes") or []:
        if not isinstance(item, dict):
            continue
        text = _clean_str(item.get("text"))
        if not _is_grounded_quote(text, passages):
            continue
        try:
            quotes.append(PlanQuote(text=text, domain=_clean_str(item.get("domain")) or None))
        except ValidationError:
            continue
    quotes = quotes[:MAX_QUOTES]

    plan = CompositionPlan(
        mode="generative", intro=intro, highlights=highlights, cards=cards, quotes=quotes
    )
    return None if plan.is_empty() else plan


def plan_rich_sections(
    brief: str,
    passages: Sequence[Passage],
    max_items: int,
    *,
    generate: GenerateFn,
    model: str,
) -> CompositionPlan | None:
    """
    Ask the generative backend for a grounded section plan.

    Every failure mode (backend error, unparseable output, nothing usable
    after normalization) is logged here and returns None so the caller can
    fall back to deterministic composition.

    Args:
        brief: Free-text brief
        passages: Ranked passages (up to 14 are sent, each truncated)
        max_items: Max highlights
        generate: Generative backend
        model: Model id

    Returns:
        CompositionPlan or None
    """
    if not passages:
        return None

    system_prompt = SYSTEM_PROMPT.replace("{max_highlights}", str(max_items))
    payload = _build_payload(brief, passages, max_items)

    try:
        raw_output = generate(system_prompt, payload, model=model, chain="plan_rich_sections")
    except Exception as e:
        logger.warning(
            f"Section planning call failed: {e}",
            extra={"error_type": type(e).__name__, "model": model},
        )
        return None

    try:
        data = parse_llm_json_dict(raw_output)
        plan = normalize_plan(data, passages[:MAX_PROMPT_PASSAGES], max_items)
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        logger.warning(
            f"Section plan output was malformed: {e}",
            extra={"error_type": type(e).__name__, "output_preview": (raw_output or "")[:200]},
        )
        return None

    if plan is None:
        logger.info("Section plan was empty after normalization")
        return None

    logger.info(
        f"Planned {len(plan.highlights)} highlights, {len(plan.cards)} cards, "
        f"{len(plan.quotes)} quotes"
    )
    return plan
