"""
Shared test fixtures and configuration for pytest.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from vectorsync.core.types import (  # noqa: E402
    EmbeddingModelRef,
    EmbeddingResult,
    ResourceVectorConfig,
    SyncStrategy,
    VectorFieldSpec,
)
from vectorsync.pipeline.extractor import template_builder  # noqa: E402
from vectorsync.providers.hashing import HashEmbeddingModel  # noqa: E402


logger = logging.getLogger(__name__)


# ============================================================================
# Environment detection
# ============================================================================

def is_sqlserver_available() -> bool:
    """Check if SQL Server is available for testing."""
    password = os.environ.get("VECTORSYNC_SQLSERVER_PASSWORD") or os.environ.get("MSSQL_SA_PASSWORD")
    if not password:
        return False

    try:
        import pyodbc
        from vectorsync.storage.sql_job_queue import QueueConfig

        conn = pyodbc.connect(QueueConfig.from_env().get_connection_string(), timeout=5)
        conn.close()
        return True

    except Exception as e:
        logger.debug(f"SQL Server not available: {e}")
        return False


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (requires SQL Server)")


def pytest_collection_modifyitems(config, items):
    """Automatically skip integration tests if SQL Server is not available."""
    if not any("integration" in item.keywords for item in items):
        return
    if is_sqlserver_available():
        return

    skip_sqlserver = pytest.mark.skip(
        reason="SQL Server not available (set MSSQL_SA_PASSWORD and ensure SQL Server is running)"
    )

    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_sqlserver)


# ============================================================================
# Test doubles
# ============================================================================

class RecordingEmbeddingModel:
    """
    Embedding adapter that records every call.

    Returns ``[len(text), index]`` per text unless a canned result is set.
    """

    provider = "recording"

    def __init__(self, result: EmbeddingResult = None, dims: int = 2):
        self.calls: List[List[str]] = []
        self.result = result
        self.dims = dims

    def generate(self, texts: List[str], options: Dict[str, Any]) -> EmbeddingResult:
        self.calls.append(list(texts))
        if self.result is not None:
            return self.result
        return EmbeddingResult.ok([[float(len(text)), float(i)] for i, text in enumerate(texts)])

    def dimensions(self, options: Dict[str, Any]) -> int:
        return self.dims


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def job_type_registry(monkeypatch):
    """Fresh global job type registry per test."""
    monkeypatch.setattr("vectorsync.jobs.registry._registry", None)


@pytest.fixture
def recording_model():
    """Adapter double that records its batches."""
    return RecordingEmbeddingModel()


@pytest.fixture
def hash_model():
    """Deterministic hash-based adapter."""
    return HashEmbeddingModel()


def make_author_config(adapter, strategy=SyncStrategy.INLINE, **model_kwargs) -> ResourceVectorConfig:
    """Author resource: direct name vector plus a full-text bio vector."""
    return ResourceVectorConfig(
        resource="author",
        specs=(
            VectorFieldSpec.direct("name", "vectorized_name"),
            VectorFieldSpec.full_text(
                "vectorized_bio",
                template_builder("{name}\nBio: {biography}"),
                used_attributes=["name", "biography"],
            ),
        ),
        model=EmbeddingModelRef(adapter=adapter, **model_kwargs),
        strategy=strategy,
    )


@pytest.fixture
def author_config_factory():
    """Build author configurations for a given adapter and strategy."""
    return make_author_config


@pytest.fixture
def author_config(recording_model):
    """Inline author configuration backed by the recording adapter."""
    return make_author_config(recording_model)
