"""Document sink: generated drafts are stored as unpublished rows."""

from typing import Any

from pagegen.core.config import get_settings
from pagegen.core.logging import get_logger
from pagegen.core.schemas_pages import DocumentStatus
from pagegen.db.supabase_client import get_supabase

logger = get_logger(__name__)


def create_document(
    title: str,
    html_body: str,
    status: DocumentStatus = DocumentStatus.DRAFT,
) -> dict[str, Any]:
    """
    Insert a generated document.

    Args:
        title: Document title
        html_body: Self-contained HTML fragment
        status: Publication status (always draft from the pipeline)

    Returns:
        Inserted row (includes the generated id)

    Raises:
        ValueError: If the insert returns no row
        Exception: If the database operation fails
    """
    settings = get_settings()
    row = {
        "title": title,
        "body_html": html_body,
        "body_format": "full_html",
        "status": DocumentStatus(status).value,
    }

    response = get_supabase().table(settings.DOCUMENTS_TABLE).insert(row).execute()
    if not response.data:
        raise ValueError("No data returned from document insert")

    document = response.data[0]
    logger.info(
        f"Created {row['status']} document {document.get('id')}",
        extra={"document_id": document.get("id"), "title": title[:90]},
    )
    return document
