"""API router for v1 endpoints."""

from fastapi import APIRouter

from pagegen.api import documents

router = APIRouter()

router.include_router(documents.router, tags=["documents"])
