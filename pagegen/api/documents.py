"""API endpoints for KB-grounded draft generation."""

import asyncio
import uuid

from fastapi import APIRouter, HTTPException

from pagegen.core.backends import default_backends
from pagegen.core.config import get_settings, pipeline_config_from_settings
from pagegen.core.logging import get_logger
from pagegen.core.schemas_pages import GenerateDocumentRequest, GenerateDocumentResponse
from pagegen.graphs.generate_page_graph import run_generate_page

logger = get_logger(__name__)

router = APIRouter()


@router.post("/documents/generate", response_model=GenerateDocumentResponse)
async def generate_document(request: GenerateDocumentRequest) -> GenerateDocumentResponse:
    """
    Generate a draft document from a brief using the knowledge base.

    Retrieval and composition problems are recovered inside the pipeline and
    still produce a draft; only a document sink failure returns 500.

    Args:
        request: Brief, optional title, optional generative override

    Returns:
        GenerateDocumentResponse with the created draft's id and title

    Raises:
        HTTPException 500: If the draft could not be stored
    """
    run_id = str(uuid.uuid4())
    settings = get_settings()

    pipeline_config = pipeline_config_from_settings(settings)
    if request.use_generative is not None:
        pipeline_config = pipeline_config.model_copy(
            update={
                "enable_generative": request.use_generative and pipeline_config.enable_generative
            }
        )

    logger.info(
        "Generating draft document",
        extra={"run_id": run_id, "brief_chars": len(request.brief)},
    )

    try:
        document = await asyncio.to_thread(
            run_generate_page,
            request.brief,
            pipeline_config,
            default_backends(settings),
            request.title,
            run_id,
        )
    except Exception as e:
        logger.exception(
            f"Failed to create document: {e}",
            extra={"run_id": run_id, "error_type": type(e).__name__},
        )
        raise HTTPException(status_code=500, detail="Failed to create document") from e

    return GenerateDocumentResponse(
        document_id=document.document_id,
        title=document.title,
        status=document.status,
        composition_mode=document.composition_mode,
        hit_count=document.hit_count,
    )
