"""Tests for the document sink with mocked Supabase."""

from unittest.mock import patch

import pytest

from pagegen.core.schemas_pages import DocumentStatus
from pagegen.db.documents import create_document


def test_create_document_inserts_draft():
    """Drafts are inserted as full HTML with draft status."""
    with patch("pagegen.db.documents.get_supabase") as mock_supabase:
        table = mock_supabase.return_value.table
        table.return_value.insert.return_value.execute.return_value.data = [
            {"id": "doc-1", "title": "Rental income"}
        ]

        document = create_document("Rental income", "<div>body</div>")

        assert document["id"] == "doc-1"
        table.assert_called_with("kb_documents")
        row = table.return_value.insert.call_args.args[0]
        assert row == {
            "title": "Rental income",
            "body_html": "<div>body</div>",
            "body_format": "full_html",
            "status": DocumentStatus.DRAFT.value,
        }


def test_create_document_no_data():
    """An insert that returns nothing raises ValueError."""
    with patch("pagegen.db.documents.get_supabase") as mock_supabase:
        mock_supabase.return_value.table.return_value.insert.return_value.execute.return_value.data = []

        with pytest.raises(ValueError, match="No data returned"):
            create_document("t", "<div></div>")


def test_create_document_failure_propagates():
    """Database errors are not swallowed."""
    with patch("pagegen.db.documents.get_supabase") as mock_supabase:
        mock_supabase.return_value.table.return_value.insert.return_value.execute.side_effect = (
            RuntimeError("insert failed")
        )

        with pytest.raises(RuntimeError):
            create_document("t", "<div></div>")
