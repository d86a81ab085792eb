"""HTML fragment rendering for generated KB pages.

Output is a self-contained fragment: an inline <style> block scoped by the
.kb-page class plus hand-written markup. Every piece of brief, passage or
model text goes through html.escape before insertion.
"""

import re
from collections.abc import Sequence
from html import escape

from pagegen.core.highlights import slugify
from pagegen.core.schemas_pages import CompositionPlan, PlanCard, PlanQuote, SourceRef

NO_PASSAGES_MESSAGE = "No matching passages found."
CONFIG_MISSING_MESSAGE = (
    "Knowledge base is not configured. Set KB_COLLECTION_ID to the knowledge base "
    "identifier and generate the draft again."
)

QUOTES_ANCHOR = "quotes"
SOURCES_ANCHOR = "sources"
CARD_LABEL = "Key point {n}"

_TRIM_CHARS = " .…:;,"

PAGE_CSS = """<style>
.kb-page { --gap:1rem; --muted:#555; --border:#e6e6e6; --bg:#fafafa; }
.kb-page h2,.kb-page h3,.kb-page h4 { line-height:1.25; }
.kb-page .hero{margin:0 0 1.5rem}
.kb-page .hero p{color:#444;margin:.25rem 0 0}
.kb-page .intro{margin:0 0 1rem}
.kb-page .highlights{margin:1rem 0}
.kb-page .highlights ul{padding-left:1.25rem}
.kb-page .cards{display:grid;gap:var(--gap);grid-template-columns:repeat(auto-fit,minmax(260px,1fr));margin:1rem 0 1.25rem}
.kb-page .card{border:1px solid var(--border);border-radius:12px;padding:1rem;background:#fff}
.kb-page .card h3{margin:.25rem 0 .5rem;font-size:1.1rem}
.kb-page .card p{margin:0 0 .75rem;color:var(--muted)}
.kb-page .card a{text-decoration:none;font-weight:600}
.kb-page .card-slate{border-top:4px solid #64748b}
.kb-page .card-blue{border-top:4px solid #2563eb}
.kb-page .card-green{border-top:4px solid #16a34a}
.kb-page .card-amber{border-top:4px solid #d97706}
.kb-page .card-rose{border-top:4px solid #e11d48}
.kb-page blockquote{margin:.5rem 0;padding:.75rem 1rem;border-left:4px solid var(--border);background:var(--bg);border-radius:6px}
.kb-page .bydom{margin:1.25rem 0}
.kb-page .cite{color:#666;font-size:.95rem}
.kb-page .sources ol{padding-left:1.25rem;font-size:.9rem}
.kb-page .notice{color:var(--muted)}
</style>"""

_WS_RE = re.compile(r"\s+")
_SAFE_URL_RE = re.compile(r"^https?://", re.IGNORECASE)


def _esc(text: str) -> str:
    return escape(text or "", quote=True)


def _normalized(text: str) -> str:
    return _WS_RE.sub(" ", text or "").strip().lower()


class AnchorRegistry:
    """Hands out unique element ids within one fragment (slug, slug-2, slug-3, ...)."""

    def __init__(self, reserved: Sequence[str] = ()) -> None:
        self._used: set[str] = set(reserved)

    def claim(self, slug: str) -> str:
        base = slug or "section"
        anchor = base
        n = 2
        while anchor in self._used:
            anchor = f"{base}-{n}"
            n += 1
        self._used.add(anchor)
        return anchor


def _diagnostic_comment(plan_mode: str, hit_count: int, quotes_local: bool = False) -> str:
    flags = [
        "KB_ONLY=true",
        f"LLM_PLANNED={'true' if plan_mode == 'generative' else 'false'}",
        f"HITS={int(hit_count)}",
    ]
    if quotes_local:
        flags.append("QUOTES=local")
    return f"<!-- {'; '.join(flags)} -->"


def _render_hero(brief: str) -> str:
    safe_brief = "<br>".join(_esc(line) for line in (brief or "").strip().splitlines())
    return f'<header class="hero"><p>{safe_brief}</p></header>'


def _repeats_blurb(card: PlanCard) -> bool:
    """True when the card title is just the opening words of its blurb."""
    title = _normalized(card.title).rstrip(_TRIM_CHARS)
    return bool(title) and _normalized(card.blurb).startswith(title)


def _render_highlights(plan: CompositionPlan) -> str:
    texts = plan.highlights
    if plan.mode == "deterministic":
        # The top highlights are the cards; listing them again would repeat their text
        texts = texts[len(plan.cards):]
    if not texts:
        return ""
    items = "".join(f"<li>{_esc(text)}</li>" for text in texts)
    return f'<div class="highlights"><h2>Key highlights</h2><ul>{items}</ul></div>'


def _read_more_target(
    card: PlanCard,
    anchored_quotes: list[tuple[PlanQuote, str]],
    hidden_quotes: list[PlanQuote],
    sources: Sequence[SourceRef],
    card_anchor: str,
) -> str:
    """Quote that contains the blurb, else the blurb's own source, else the shared section."""
    blurb = _normalized(card.blurb)
    core = blurb.rstrip(_TRIM_CHARS)
    for quote, anchor in anchored_quotes:
        if core and core in _normalized(quote.text):
            return anchor
    for quote in hidden_quotes:
        if _normalized(quote.text) == blurb:
            index = _citation_index(quote, sources)
            if index is not None:
                return f"src-{index}"
    if anchored_quotes:
        return QUOTES_ANCHOR
    if sources:
        return SOURCES_ANCHOR
    return card_anchor


def _render_cards(plan: CompositionPlan, card_anchors: list[str], targets: list[str]) -> str:
    if not plan.cards:
        return ""
    parts = ['<div class="cards">']
    for n, (card, anchor, target) in enumerate(zip(plan.cards, card_anchors, targets), start=1):
        color_class = f" card-{card.color}" if card.color else ""
        heading = CARD_LABEL.format(n=n) if _repeats_blurb(card) else card.title
        parts.append(
            f'<article class="card{color_class}" id="{_esc(anchor)}">'
            f"<h3>{_esc(heading)}</h3>"
            f"<p>{_esc(card.blurb)}</p>"
            f'<a href="#{_esc(target)}">Read more →</a>'
            "</article>"
        )
    parts.append("</div>")
    return "".join(parts)


def _citation_index(quote: PlanQuote, sources: Sequence[SourceRef]) -> int | None:
    if quote.source:
        for ref in sources:
            if ref.source == quote.source:
                return ref.index
    if quote.domain:
        for ref in sources:
            if ref.domain == quote.domain:
                return ref.index
    return None


def _split_quotes(plan: CompositionPlan) -> tuple[list[PlanQuote], list[PlanQuote]]:
    """(visible, hidden): hidden quotes repeat a card blurb verbatim."""
    blurbs = {_normalized(card.blurb) for card in plan.cards}
    visible, hidden = [], []
    for quote in plan.quotes:
        (hidden if _normalized(quote.text) in blurbs else visible).append(quote)
    return visible, hidden


def _render_quotes(anchored_quotes: list[tuple[PlanQuote, str]], sources: Sequence[SourceRef]) -> str:
    if not anchored_quotes:
        return ""

    by_domain: dict[str, list[tuple[PlanQuote, str]]] = {}
    for quote, anchor in anchored_quotes:
        by_domain.setdefault(quote.domain or "", []).append((quote, anchor))

    parts = [f'<section class="bydom" id="{QUOTES_ANCHOR}"><h3>Quotes</h3>']
    for domain, items in by_domain.items():
        parts.append('<div class="domain">')
        if domain:
            parts.append(f"<h4>{_esc(domain)}</h4>")
        for quote, anchor in items:
            marker = ""
            index = _citation_index(quote, sources)
            if index is not None:
                marker = f' <sup class="cite"><a href="#src-{index}">[{index}]</a></sup>'
            parts.append(f'<blockquote id="{_esc(anchor)}">{_esc(quote.text)}{marker}</blockquote>')
        parts.append("</div>")
    parts.append("</section>")
    return "".join(parts)


def _render_sources(sources: Sequence[SourceRef]) -> str:
    if not sources:
        return ""
    items = []
    for ref in sources:
        label = _esc(ref.source)
        if ref.is_url and _SAFE_URL_RE.match(ref.source):
            body = f'<a href="{label}" rel="noopener noreferrer" target="_blank">{label}</a>'
        else:
            body = label
        items.append(f'<li id="src-{ref.index}">{body}</li>')
    return (
        f'<section class="sources" id="{SOURCES_ANCHOR}"><h3>Sources</h3><ol>'
        + "".join(items)
        + "</ol></section>"
    )


def render_page_html(
    brief: str,
    plan: CompositionPlan,
    sources: Sequence[SourceRef],
    hit_count: int,
) -> str:
    """
    Render a composition plan as a self-contained HTML fragment.

    Text is never repeated across sections: deterministic highlights that
    became cards are not listed again, a card whose title only restates the
    start of its blurb gets a numbered label instead, and quotes equal to a
    card blurb are hidden. Each card's "Read more" link points at the quote
    holding its text, or at the cited source when that quote is hidden.

    Args:
        brief: Free-text brief (shown in the header)
        plan: Generative or deterministic plan
        sources: Numbered sources referenced by quote citations
        hit_count: Usable passages after retrieval (recorded in a comment)

    Returns:
        HTML fragment
    """
    reserved = [QUOTES_ANCHOR, SOURCES_ANCHOR] + [f"src-{ref.index}" for ref in sources]
    anchors = AnchorRegistry(reserved)
    card_anchors = [anchors.claim(card.slug or slugify(card.title)) for card in plan.cards]

    visible, hidden = _split_quotes(plan)
    anchored_quotes = [(quote, anchors.claim(f"quote-{i}")) for i, quote in enumerate(visible, 1)]
    targets = [
        _read_more_target(card, anchored_quotes, hidden, sources, anchor)
        for card, anchor in zip(plan.cards, card_anchors)
    ]
    intro = f'<p class="intro">{_esc(plan.intro)}</p>' if plan.intro else ""

    sections = [
        _render_hero(brief),
        intro,
        _render_highlights(plan),
        _render_cards(plan, card_anchors, targets),
        _render_quotes(anchored_quotes, sources),
        _render_sources(sources),
    ]
    body = "\n  ".join(s for s in sections if s)
    comment = _diagnostic_comment(plan.mode, hit_count, plan.quotes_local)
    return f'{PAGE_CSS}\n<div class="kb-page">\n  {comment}\n  {body}\n</div>'


def render_notice_html(brief: str, message: str = NO_PASSAGES_MESSAGE) -> str:
    """Minimal fragment with the header and a single notice paragraph."""
    return (
        f'{PAGE_CSS}\n<div class="kb-page">\n  {_diagnostic_comment("notice", 0)}\n'
        f"  {_render_hero(brief)}\n"
        f'  <p class="notice"><em>{_esc(message)}</em></p>\n</div>'
    )
