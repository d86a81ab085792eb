"""In-memory stand-ins for the retrieval backend, generative backend and document sink."""

from collections.abc import Callable
from typing import Any

from pagegen.core.backends import PageBackends
from pagegen.core.schemas_pages import DocumentStatus


class FakeKnowledgeBase:
    """Retrieval backend returning canned rows, optionally per query or failing."""

    def __init__(
        self,
        rows: list[dict[str, Any]] | None = None,
        by_query: dict[str, list[dict[str, Any]]] | None = None,
        error: Exception | None = None,
        fail_queries: set[str] | None = None,
    ):
        self.rows = rows or []
        self.by_query = by_query or {}
        self.error = error
        self.fail_queries = fail_queries or set()
        self.calls: list[tuple[str, str, int]] = []

    def __call__(self, collection_id: str, query: str, top_k: int) -> list[dict[str, Any]]:
        self.calls.append((collection_id, query, top_k))
        if self.error is not None or query in self.fail_queries:
            raise self.error or ConnectionError("kb unavailable")
        if query in self.by_query:
            return [dict(r) for r in self.by_query[query]]
        return [dict(r) for r in self.rows]


class FakeGenerator:
    """Generative backend returning canned text (or raising) and recording prompts."""

    def __init__(
        self,
        responses: list[str] | str | None = None,
        error: Exception | None = None,
        by_chain: dict[str, str] | None = None,
    ):
        if isinstance(responses, str):
            responses = [responses]
        self.responses = list(responses or [])
        self.error = error
        self.by_chain = by_chain or {}
        self.calls: list[dict[str, Any]] = []

    def __call__(
        self, system_prompt: str, user_payload: str, *, model: str, chain: str | None = None
    ) -> str:
        self.calls.append(
            {"system": system_prompt, "user": user_payload, "model": model, "chain": chain}
        )
        if self.error is not None:
            raise self.error
        if chain in self.by_chain:
            return self.by_chain[chain]
        if not self.responses:
            return ""
        return self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]


class FakeDocumentSink:
    """Document sink that stores drafts in memory."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.documents: list[dict[str, Any]] = []

    def __call__(self, title: str, html_body: str, status: DocumentStatus) -> dict[str, Any]:
        if self.error is not None:
            raise self.error
        document = {
            "id": f"doc-{len(self.documents) + 1}",
            "title": title,
            "body_html": html_body,
            "status": status,
        }
        self.documents.append(document)
        return document


def make_backends(
    kb: Callable | None = None,
    generator: Callable | None = None,
    sink: FakeDocumentSink | None = None,
) -> tuple[PageBackends, FakeDocumentSink]:
    """Bundle fakes into PageBackends; returns the sink for assertions."""
    sink = sink or FakeDocumentSink()
    backends = PageBackends(
        retrieve=kb or FakeKnowledgeBase(),
        create_document=sink,
        generate=generator,
    )
    return backends, sink
