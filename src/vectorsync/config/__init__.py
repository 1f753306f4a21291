"""
Configuration management for vectorsync.
"""

from .loader import (
    ResourceRegistry,
    build_model_ref,
    build_registry,
    build_resource_config,
    load_registry,
)

__all__ = [
    "ResourceRegistry",
    "build_model_ref",
    "build_registry",
    "build_resource_config",
    "load_registry",
]
