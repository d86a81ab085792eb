"""Pydantic schemas for KB page generation."""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

# =======================
# Shape bounds
# =======================

HIGHLIGHT_MIN_CHARS = 40
HIGHLIGHT_MAX_CHARS = 260
CARD_TITLE_MIN_CHARS = 10
CARD_TITLE_MAX_CHARS = 90
CARD_BLURB_MIN_CHARS = 40
CARD_BLURB_MAX_CHARS = 240
QUOTE_MIN_CHARS = 40
QUOTE_MAX_CHARS = 240
INTRO_MAX_CHARS = 600
MAX_CARDS = 4
MAX_QUOTES = 4
MAX_PLAN_HIGHLIGHTS = 12
MAX_LOCAL_QUOTES = 16

CardColor = Literal["slate", "blue", "green", "amber", "rose"]
CARD_COLORS: tuple[str, ...] = ("slate", "blue", "green", "amber", "rose")

CompositionMode = Literal["generative", "deterministic", "notice"]


class DocumentStatus(str, Enum):
    """Publication status of a generated document (always created as draft)."""

    DRAFT = "draft"


# =======================
# Retrieval records
# =======================


class Passage(BaseModel):
    """A unit of retrieved text."""

    text: str = Field(..., description="Passage text (sanitized once it enters the pipeline)")
    score: float | None = Field(default=None, description="Backend relevance score")
    source: str | None = Field(default=None, description="URL or opaque source identifier")
    adjusted_score: float = Field(default=0.0, description="score minus recency penalty")

    @model_validator(mode="before")
    @classmethod
    def _from_backend_row(cls, data: Any) -> Any:
        """Accept raw backend rows (content/similarity/metadata keys)."""
        if not isinstance(data, dict):
            return data
        row = dict(data)
        if "text" not in row and "content" in row:
            row["text"] = row["content"]
        if row.get("score") is None and row.get("similarity") is not None:
            row["score"] = row["similarity"]
        if not row.get("source"):
            metadata = row.get("metadata") or {}
            if isinstance(metadata, dict):
                for key in ("source", "url", "document_url"):
                    if metadata.get(key):
                        row["source"] = str(metadata[key])
                        break
        if not row.get("source"):
            row["source"] = None
        return row


class Highlight(BaseModel):
    """A titled excerpt derived from passage sentences."""

    title: str
    text: str
    slug: str
    score: int = 0


class SourceRef(BaseModel):
    """Numbered entry in the rendered sources list."""

    index: int = Field(..., ge=1)
    source: str
    domain: str
    is_url: bool = False


# =======================
# Composition plan
# =======================


class PlanCard(BaseModel):
    """A card in the rendered grid."""

    title: str = Field(..., min_length=CARD_TITLE_MIN_CHARS, max_length=CARD_TITLE_MAX_CHARS)
    blurb: str = Field(..., min_length=CARD_BLURB_MIN_CHARS, max_length=CARD_BLURB_MAX_CHARS)
    color: CardColor | None = None
    slug: str | None = None


class PlanQuote(BaseModel):
    """A verbatim excerpt with its (optional) source domain."""

    text: str = Field(..., min_length=QUOTE_MIN_CHARS, max_length=QUOTE_MAX_CHARS)
    domain: str | None = None
    source: str | None = None


class CompositionPlan(BaseModel):
    """Structured content handed to the renderer."""

    mode: Literal["generative", "deterministic"]
    intro: str | None = Field(default=None, max_length=INTRO_MAX_CHARS)
    highlights: list[str] = Field(default_factory=list, max_length=MAX_PLAN_HIGHLIGHTS)
    cards: list[PlanCard] = Field(default_factory=list, max_length=MAX_CARDS)
    quotes: list[PlanQuote] = Field(default_factory=list, max_length=MAX_LOCAL_QUOTES)
    quotes_local: bool = False

    @model_validator(mode="after")
    def _check_highlights(self) -> "CompositionPlan":
        for text in self.highlights:
            if not HIGHLIGHT_MIN_CHARS <= len(text) <= HIGHLIGHT_MAX_CHARS:
                raise ValueError(f"highlight length {len(text)} out of bounds")
        return self

    def is_empty(self) -> bool:
        """True when the plan carries no renderable content."""
        return not (self.intro or self.highlights or self.cards or self.quotes)


# =======================
# Pipeline output + API
# =======================


class RenderedDocument(BaseModel):
    """Final output of one generation run."""

    title: str
    html_body: str
    status: DocumentStatus = DocumentStatus.DRAFT
    document_id: str | None = None
    composition_mode: CompositionMode
    hit_count: int = 0


class GenerateDocumentRequest(BaseModel):
    """Request body for draft generation."""

    brief: str = Field(..., min_length=1, max_length=20_000, description="Free-text brief")
    title: str | None = Field(default=None, max_length=255, description="Optional title")
    use_generative: bool | None = Field(
        default=None, description="Override the generative composition flag for this request"
    )


class GenerateDocumentResponse(BaseModel):
    """Response for draft generation."""

    document_id: str | None
    title: str
    status: DocumentStatus
    composition_mode: CompositionMode
    hit_count: int
