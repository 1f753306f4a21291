"""
Job types, queue models and handlers for deferred embedding refresh.
"""

from .models import Job, JobStatus
from .registry import (
    JobTypeDefinition,
    JobTypeRegistry,
    get_job_type_registry,
    get_job_type,
    register_job_type,
    ensure_job_type,
)
from .handlers import HandlerResult, HandlerStatus, RunContext, handle_update_embeddings

__all__ = [
    "Job",
    "JobStatus",
    "JobTypeDefinition",
    "JobTypeRegistry",
    "get_job_type_registry",
    "get_job_type",
    "register_job_type",
    "ensure_job_type",
    "HandlerResult",
    "HandlerStatus",
    "RunContext",
    "handle_update_embeddings",
]
