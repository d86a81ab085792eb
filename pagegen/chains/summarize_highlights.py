"""LLM chain that rewrites highlight sentences into short card blurbs."""

import json
from collections.abc import Sequence

from pagegen.core.backends import GenerateFn
from pagegen.core.highlights import trim_to_sentence
from pagegen.core.llm import parse_llm_json_dict
from pagegen.core.logging import get_logger
from pagegen.core.schemas_pages import CARD_BLURB_MAX_CHARS, CARD_BLURB_MIN_CHARS

logger = get_logger(__name__)

# ruff: noqa: E501
SYSTEM_PROMPT = """You write short card blurbs for a knowledge page.

For each numbered input sentence, write one blurb of at most {sentence_count} sentences that restates it.
Use ONLY information present in that sentence. Do not add facts, numbers or links.

You MUST output ONLY valid JSON: {"blurbs": ["string", ...]}
- Exactly one blurb per input sentence, in the same order.
- Each blurb 40 to 240 characters.
- No markdown, no explanation."""


def summarize_highlights_to_blurbs(
    brief: str,
    sentences: Sequence[str],
    sentence_count: int = 2,
    *,
    generate: GenerateFn,
    model: str,
) -> list[str] | None:
    """
    Produce one blurb per highlight sentence, preserving order.

    Args:
        brief: Free-text brief (context for tone)
        sentences: Highlight sentences
        sentence_count: Max sentences per blurb
        generate: Generative backend
        model: Model id

    Returns:
        Blurbs aligned with `sentences`, or None on any failure (the caller
        then trims each sentence locally)
    """
    if not sentences:
        return None

    system_prompt = SYSTEM_PROMPT.replace("{sentence_count}", str(sentence_count))
    payload = json.dumps(
        {"brief": brief, "sentences": [{"n": i + 1, "text": s} for i, s in enumerate(sentences)]},
        ensure_ascii=False,
    )

    try:
        raw_output = generate(system_prompt, payload, model=model, chain="summarize_highlights")
    except Exception as e:
        logger.warning(
            f"Blurb summarization call failed: {e}", extra={"error_type": type(e).__name__}
        )
        return None

    try:
        blurbs = parse_llm_json_dict(raw_output).get("blurbs")
        if not isinstance(blurbs, list) or len(blurbs) != len(sentences):
            raise ValueError(f"Expected {len(sentences)} blurbs")

        cleaned = []
        for blurb in blurbs:
            if not isinstance(blurb, str):
                raise TypeError("Blurb is not a string")
            blurb = trim_to_sentence(" ".join(blurb.split()), CARD_BLURB_MAX_CHARS)
            if len(blurb) < CARD_BLURB_MIN_CHARS:
                raise ValueError("Blurb too short")
            cleaned.append(blurb)
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        logger.warning(
            f"Blurb output was malformed: {e}", extra={"error_type": type(e).__name__}
        )
        return None

    return cleaned
