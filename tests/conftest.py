"""Pytest configuration and fixtures."""

import os

import pytest

from pagegen.core.config import PipelineConfig


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["OPENAI_API_KEY"] = "test-openai-key"
    os.environ["PAGEGEN_ENV"] = "test"


@pytest.fixture
def pipeline_config():
    """Deterministic pipeline config (no generative backend, fixed reference year)."""
    return PipelineConfig(
        collection_id="kb-test",
        enable_generative=False,
        reference_year=2025,
    )
