"""LangGraph pipeline: brief -> KB passages -> composition plan -> HTML draft."""

import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from langgraph.graph import END, StateGraph

from pagegen.core.backends import PageBackends, document_id_of
from pagegen.core.composition import build_sources, compose_plan
from pagegen.core.config import PipelineConfig
from pagegen.core.highlights import PLACEHOLDER_TITLE, auto_title, extract_highlights
from pagegen.core.logging import get_logger, log_with_context
from pagegen.core.page_render import (
    CONFIG_MISSING_MESSAGE,
    NO_PASSAGES_MESSAGE,
    render_notice_html,
    render_page_html,
)
from pagegen.core.passage_ranking import rank_passages
from pagegen.core.passage_retrieval import filter_allowed_domains, retrieve_aligned, retrieve_merged
from pagegen.core.query_builder import extract_salient_terms, queries_for_strategy
from pagegen.core.schemas_pages import (
    MAX_PLAN_HIGHLIGHTS,
    CompositionPlan,
    DocumentStatus,
    Highlight,
    Passage,
    RenderedDocument,
)

logger = get_logger(__name__)

MAX_STEPS = 10


@dataclass
class GeneratePageState:
    """State for the generate page graph."""

    # Input fields
    brief: str
    pipeline_config: PipelineConfig
    backends: PageBackends
    run_id: str
    title: str | None = None

    # Processing state
    step_count: int = 0
    queries: list[str] = field(default_factory=list)
    terms: list[str] = field(default_factory=list)
    passages: list[Passage] = field(default_factory=list)
    highlights: list[Highlight] = field(default_factory=list)
    plan: CompositionPlan | None = None
    notice: str | None = None

    # Output
    document_title: str | None = None
    html_body: str | None = None
    composition_mode: str | None = None
    document_id: str | None = None


def _check_max_steps(state: GeneratePageState) -> GeneratePageState:
    """Check and increment step count, raise if exceeded."""
    state.step_count += 1
    if state.step_count > MAX_STEPS:
        raise RuntimeError(f"Graph exceeded max steps ({MAX_STEPS})")
    return state


def check_config(state: GeneratePageState) -> dict[str, Any]:
    """Short-circuit to a placeholder draft when no KB is configured."""
    state = _check_max_steps(state)

    if not state.pipeline_config.collection_id:
        log_with_context(
            logger,
            logging.WARNING,
            "KB collection not configured, creating placeholder draft",
            run_id=state.run_id,
            error_type="config_missing",
        )
        return {"notice": CONFIG_MISSING_MESSAGE, "step_count": state.step_count}

    return {"step_count": state.step_count}


def build_queries(state: GeneratePageState) -> dict[str, Any]:
    """Derive query variants and salient terms from the brief."""
    state = _check_max_steps(state)
    config = state.pipeline_config

    queries = queries_for_strategy(state.brief, config.query_strategy)
    terms = extract_salient_terms(state.brief) if config.term_alignment else []

    logger.info(
        f"Built {len(queries)} queries, {len(terms)} alignment terms",
        extra={"run_id": state.run_id, "terms": terms},
    )
    return {"queries": queries, "terms": terms, "step_count": state.step_count}


def retrieve(state: GeneratePageState) -> dict[str, Any]:
    """Retrieve, merge, align and allowlist-filter passages."""
    state = _check_max_steps(state)
    config = state.pipeline_config
    kwargs = {
        "collection_id": config.collection_id,
        "retrieve_fn": state.backends.retrieve,
        "relaxed": config.sanitize_relaxed,
    }

    if state.terms:
        passages = retrieve_aligned(state.queries, state.terms, config.top_k, **kwargs)
    else:
        passages = retrieve_merged(state.queries, config.top_k, **kwargs)

    passages = filter_allowed_domains(passages, config.allowed_domains)

    if not passages:
        log_with_context(
            logger,
            logging.INFO,
            "No usable passages after retrieval",
            run_id=state.run_id,
            query_count=len(state.queries),
        )
        return {"passages": [], "notice": NO_PASSAGES_MESSAGE, "step_count": state.step_count}

    logger.info(f"Retrieved {len(passages)} usable passages", extra={"run_id": state.run_id})
    return {"passages": passages, "step_count": state.step_count}


def rank(state: GeneratePageState) -> dict[str, Any]:
    """Rank passages by adjusted score and extract highlights."""
    state = _check_max_steps(state)
    config = state.pipeline_config

    ranked = rank_passages(state.passages, config.reference_year)
    highlights = extract_highlights(
        [p.text for p in ranked], min(config.max_highlights, MAX_PLAN_HIGHLIGHTS)
    )
    return {"passages": ranked, "highlights": highlights, "step_count": state.step_count}


def compose(state: GeneratePageState) -> dict[str, Any]:
    """Build the composition plan (generative with deterministic fallback)."""
    state = _check_max_steps(state)

    plan = compose_plan(
        state.brief,
        state.passages,
        state.highlights,
        state.pipeline_config,
        state.backends.generate,
    )
    logger.info(f"Composed {plan.mode} plan", extra={"run_id": state.run_id})
    return {"plan": plan, "step_count": state.step_count}


def render(state: GeneratePageState) -> dict[str, Any]:
    """Render the plan to HTML and pick the title."""
    state = _check_max_steps(state)

    if state.plan is None:
        raise ValueError("Plan not composed")

    html_body = render_page_html(
        state.brief, state.plan, build_sources(state.passages), len(state.passages)
    )
    document_title = auto_title(state.title, state.highlights, state.passages, state.brief)
    return {
        "html_body": html_body,
        "document_title": document_title,
        "composition_mode": state.plan.mode,
        "step_count": state.step_count,
    }


def render_notice(state: GeneratePageState) -> dict[str, Any]:
    """Render the notice fragment (config missing or no passages)."""
    state = _check_max_steps(state)

    title = (state.title or "").strip() or PLACEHOLDER_TITLE
    return {
        "html_body": render_notice_html(state.brief, state.notice or NO_PASSAGES_MESSAGE),
        "document_title": title,
        "composition_mode": "notice",
        "step_count": state.step_count,
    }


def persist(state: GeneratePageState) -> dict[str, Any]:
    """Hand the draft to the document sink (exactly once per run)."""
    state = _check_max_steps(state)

    if state.html_body is None or state.document_title is None:
        raise ValueError("Document not rendered")

    try:
        handle = state.backends.create_document(
            state.document_title, state.html_body, DocumentStatus.DRAFT
        )
    except Exception as e:
        logger.error(
            f"Failed to create document: {e}",
            extra={"run_id": state.run_id, "error_type": type(e).__name__},
        )
        raise

    return {"document_id": document_id_of(handle), "step_count": state.step_count}


def _route_after_config(state: GeneratePageState) -> str:
    return "render_notice" if state.notice else "build_queries"


def _route_after_retrieve(state: GeneratePageState) -> str:
    return "rank" if state.passages else "render_notice"


def _build_graph() -> StateGraph:
    """Build the generate page graph."""
    graph = StateGraph(GeneratePageState)

    graph.add_node("check_config", check_config)
    graph.add_node("build_queries", build_queries)
    graph.add_node("retrieve", retrieve)
    graph.add_node("rank", rank)
    graph.add_node("compose", compose)
    graph.add_node("render", render)
    graph.add_node("render_notice", render_notice)
    graph.add_node("persist", persist)

    graph.set_entry_point("check_config")
    graph.add_conditional_edges("check_config", _route_after_config)
    graph.add_edge("build_queries", "retrieve")
    graph.add_conditional_edges("retrieve", _route_after_retrieve)
    graph.add_edge("rank", "compose")
    graph.add_edge("compose", "render")
    graph.add_edge("render", "persist")
    graph.add_edge("render_notice", "persist")
    graph.add_edge("persist", END)

    return graph


# Compile the graph once at module load
_compiled_graph = _build_graph().compile()


def run_generate_page(
    brief: str,
    pipeline_config: PipelineConfig,
    backends: PageBackends,
    title: str | None = None,
    run_id: str | None = None,
) -> RenderedDocument:
    """
    Run the generate page graph.

    Retrieval, generation and empty-result failures are recovered inside the
    graph; the only error that propagates is a document sink failure.

    Args:
        brief: Free-text brief
        pipeline_config: Immutable pipeline configuration
        backends: Retrieval, generative and document sink collaborators
        title: Optional user-supplied title
        run_id: Optional run id for log correlation

    Returns:
        RenderedDocument (always a Draft)

    Raises:
        Exception: If the document sink fails
    """
    run_id = run_id or str(uuid4())
    initial_state = GeneratePageState(
        brief=brief,
        pipeline_config=pipeline_config,
        backends=backends,
        run_id=run_id,
        title=title,
    )

    logger.info(
        "Starting generate_page graph",
        extra={"run_id": run_id, "generative": pipeline_config.enable_generative},
    )

    final_state = _compiled_graph.invoke(initial_state)

    document = RenderedDocument(
        title=final_state["document_title"],
        html_body=final_state["html_body"],
        status=DocumentStatus.DRAFT,
        document_id=final_state.get("document_id"),
        composition_mode=final_state["composition_mode"],
        hit_count=len(final_state.get("passages") or []),
    )

    logger.info(
        f"Completed generate_page graph ({document.composition_mode})",
        extra={"run_id": run_id, "document_id": document.document_id},
    )
    return document
