"""Composition planning: generative plan first, deterministic fallback otherwise.

Whatever path produces the plan, the result is a validated CompositionPlan,
so the renderer only ever sees content within the declared shape bounds.
"""

from collections.abc import Sequence

from pagegen.chains.plan_rich_sections import plan_rich_sections
from pagegen.chains.summarize_highlights import summarize_highlights_to_blurbs
from pagegen.core.backends import GenerateFn
from pagegen.core.config import PipelineConfig
from pagegen.core.highlights import trim_to_sentence
from pagegen.core.logging import get_logger
from pagegen.core.passage_ranking import domain_label, group_by_source
from pagegen.core.passage_retrieval import source_host
from pagegen.core.schemas_pages import (
    MAX_CARDS,
    MAX_LOCAL_QUOTES,
    MAX_PLAN_HIGHLIGHTS,
    QUOTE_MAX_CHARS,
    QUOTE_MIN_CHARS,
    CompositionPlan,
    Highlight,
    Passage,
    PlanCard,
    PlanQuote,
    SourceRef,
)

logger = get_logger(__name__)

LOCAL_BLURB_CHARS = 220
MAX_SOURCES = 12
BLURB_SENTENCES = 2


def build_local_quotes(passages: Sequence[Passage], cap_per_source: int) -> list[PlanQuote]:
    """Quotes from the top passages of each source domain, trimmed to 240 chars."""
    quotes: list[PlanQuote] = []
    for domain, items in group_by_source(list(passages), cap_per_source).items():
        for passage in items:
            text = trim_to_sentence(passage.text, QUOTE_MAX_CHARS)
            if len(text) < QUOTE_MIN_CHARS:
                continue
            quotes.append(PlanQuote(text=text, domain=domain, source=passage.source))
    return quotes[:MAX_LOCAL_QUOTES]


def build_sources(passages: Sequence[Passage]) -> list[SourceRef]:
    """Distinct non-empty sources in ranked order, numbered from 1, capped at 12."""
    refs: list[SourceRef] = []
    seen: set[str] = set()
    for passage in passages:
        source = (passage.source or "").strip()
        if not source or source in seen:
            continue
        seen.add(source)
        refs.append(
            SourceRef(
                index=len(refs) + 1,
                source=source,
                domain=domain_label(source),
                is_url=source_host(source) is not None,
            )
        )
        if len(refs) >= MAX_SOURCES:
            break
    return refs


def build_deterministic_plan(
    brief: str,
    highlights: Sequence[Highlight],
    passages: Sequence[Passage],
    config: PipelineConfig,
    generate: GenerateFn | None = None,
) -> CompositionPlan:
    """
    Compose from locally extracted highlights.

    Cards are the top 4 highlights. Their blurbs come from the blurb chain
    when a generative backend is enabled, otherwise (or when it fails) from
    trimming each highlight to a sentence boundary.

    Args:
        brief: Free-text brief
        highlights: Extracted highlights, best first
        passages: Ranked passages (for grouped quotes)
        config: Pipeline configuration
        generate: Optional generative backend

    Returns:
        Deterministic CompositionPlan
    """
    highlights = list(highlights)[:MAX_PLAN_HIGHLIGHTS]
    top = highlights[:MAX_CARDS]

    blurbs = None
    if top and generate is not None and config.enable_generative:
        blurbs = summarize_highlights_to_blurbs(
            brief,
            [h.text for h in top],
            BLURB_SENTENCES,
            generate=generate,
            model=config.blurb_model,
        )
    if not blurbs:
        blurbs = [trim_to_sentence(h.text, LOCAL_BLURB_CHARS) for h in top]

    cards = [PlanCard(title=h.title, blurb=b, slug=h.slug) for h, b in zip(top, blurbs)]

    return CompositionPlan(
        mode="deterministic",
        highlights=[h.text for h in highlights],
        cards=cards,
        quotes=build_local_quotes(passages, config.group_cap),
    )


def compose_plan(
    brief: str,
    passages: Sequence[Passage],
    highlights: Sequence[Highlight],
    config: PipelineConfig,
    generate: GenerateFn | None = None,
) -> CompositionPlan:
    """
    Produce the plan handed to the renderer.

    Tries the generative planner when enabled and a backend is wired; any
    empty or failed result falls back to build_deterministic_plan(). A
    generative plan without quotes is given local grouped quotes.

    Args:
        brief: Free-text brief
        passages: Ranked passages
        highlights: Locally extracted highlights
        config: Pipeline configuration
        generate: Optional generative backend

    Returns:
        CompositionPlan (never empty when passages are non-empty)
    """
    if config.enable_generative and generate is not None:
        plan = plan_rich_sections(
            brief,
            passages,
            min(config.max_highlights, MAX_PLAN_HIGHLIGHTS),
            generate=generate,
            model=config.planner_model,
        )
        if plan is not None:
            if not plan.quotes:
                local_quotes = build_local_quotes(passages, config.group_cap)
                if local_quotes:
                    plan = plan.model_copy(update={"quotes": local_quotes, "quotes_local": True})
            return plan
        logger.info("Falling back to deterministic composition")

    return build_deterministic_plan(brief, highlights, passages, config, generate)
