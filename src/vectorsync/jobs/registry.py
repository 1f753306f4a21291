"""
Job Type Registry - Central catalog for job type definitions.

Each definition carries the handler reference plus operational metadata
(retry limits, priority defaults) used by the worker.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional


logger = logging.getLogger(__name__)

UPDATE_EMBEDDINGS_HANDLER = "vectorsync.jobs.handlers:handle_update_embeddings"


@dataclass
class JobTypeDefinition:
    """
    Definition for a job type.

    Attributes:
        job_type: Unique identifier (e.g., 'update_embeddings')
        display_name: Human-readable name for display/logging
        handler_ref: Import path of the handler (``module:function``)
        max_attempts: Maximum attempts before deadletter (default: 3)
        default_priority: Default priority (higher = processed sooner)
        description: Optional description of what this job type does
    """
    job_type: str
    display_name: str
    handler_ref: str
    max_attempts: int = 3
    default_priority: int = 100
    description: Optional[str] = None


class JobTypeRegistry:
    """
    Registry for job type definitions.

    Example:
        >>> registry = JobTypeRegistry()
        >>> registry.get("update_embeddings").max_attempts
        3
    """

    def __init__(self):
        self._definitions: Dict[str, JobTypeDefinition] = {}
        self._loaded = False

    def register(self, definition: JobTypeDefinition) -> None:
        """Register a job type definition, replacing any existing one."""
        if definition.job_type in self._definitions:
            logger.warning(
                f"Overwriting existing job type definition: {definition.job_type}"
            )
        self._definitions[definition.job_type] = definition
        logger.debug(f"Registered job type: {definition.job_type}")

    def get(self, job_type: str) -> Optional[JobTypeDefinition]:
        if not self._loaded:
            self._load_builtins()
        return self._definitions.get(job_type)

    def list_types(self) -> List[str]:
        if not self._loaded:
            self._load_builtins()
        return list(self._definitions.keys())

    def list_definitions(self) -> List[JobTypeDefinition]:
        if not self._loaded:
            self._load_builtins()
        return list(self._definitions.values())

    def _load_builtins(self) -> None:
        """Load built-in job type definitions."""
        if self._loaded:
            return
        self._loaded = True

        if "update_embeddings" not in self._definitions:
            self.register(JobTypeDefinition(
                job_type="update_embeddings",
                display_name="Update Embeddings",
                handler_ref=UPDATE_EMBEDDINGS_HANDLER,
                max_attempts=3,
                default_priority=100,
                description="Recompute vector fields of a committed record and commit them as a follow-up mutation.",
            ))


# Global registry instance
_registry: Optional[JobTypeRegistry] = None


def get_job_type_registry() -> JobTypeRegistry:
    """Get the global job type registry."""
    global _registry
    if _registry is None:
        _registry = JobTypeRegistry()
    return _registry


def get_job_type(job_type: str) -> Optional[JobTypeDefinition]:
    """Get a job type definition from the global registry."""
    return get_job_type_registry().get(job_type)


def register_job_type(definition: JobTypeDefinition) -> None:
    """Register a job type definition in the global registry."""
    get_job_type_registry().register(definition)


def ensure_job_type(job_type: str) -> JobTypeDefinition:
    """
    Get a job type definition, registering a refresh job type if missing.

    Resources may name their own deferred job type; unless a definition was
    registered for it beforehand, it runs the embedding refresh handler with
    the default retry limit and priority.

    Args:
        job_type: Job type named by a resource configuration

    Returns:
        The registered definition
    """
    registry = get_job_type_registry()
    definition = registry.get(job_type)
    if definition is None:
        definition = JobTypeDefinition(
            job_type=job_type,
            display_name=job_type.replace("_", " ").title(),
            handler_ref=UPDATE_EMBEDDINGS_HANDLER,
            description="Recompute vector fields of a committed record (resource job type).",
        )
        registry.register(definition)
    return definition
