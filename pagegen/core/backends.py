"""External collaborators of the page pipeline, bundled for injection."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from pagegen.core.config import Settings
from pagegen.core.passage_retrieval import RetrieveFn
from pagegen.core.schemas_pages import DocumentStatus


class GenerateFn(Protocol):
    """Generative backend: system instructions + user payload -> raw text."""

    def __call__(
        self, system_prompt: str, user_payload: str, *, model: str, chain: str | None = None
    ) -> str: ...


CreateDocumentFn = Callable[[str, str, DocumentStatus], Any]


@dataclass(frozen=True)
class PageBackends:
    """Retrieval backend, optional generative backend and document sink."""

    retrieve: RetrieveFn
    create_document: CreateDocumentFn
    generate: GenerateFn | None = None


def document_id_of(handle: Any) -> str | None:
    """Extract the id from whatever the document sink returned."""
    if handle is None:
        return None
    if isinstance(handle, dict):
        value = handle.get("id")
    else:
        value = getattr(handle, "id", handle)
    return str(value) if value is not None else None


def default_backends(settings: Settings) -> PageBackends:
    """Wire the Supabase KB search, Anthropic (when keyed) and the Supabase document table."""
    from pagegen.core.llm import invoke_claude
    from pagegen.db.documents import create_document
    from pagegen.db.kb_passages import search_kb_passages

    return PageBackends(
        retrieve=search_kb_passages,
        create_document=create_document,
        generate=invoke_claude if settings.ANTHROPIC_API_KEY else None,
    )
