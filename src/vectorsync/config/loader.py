"""
Configuration loader for vectorsync.

Loads the vectorize YAML file once at process start and resolves it into
an immutable ResourceRegistry. Every validation problem is raised as a
ConfigurationError here rather than on the mutation path.

Example file:

    embedding_models:
      default:
        adapter: ollama
        options:
          model: nomic-embed-text

    resources:
      - name: author
        strategy: inline
        embedding_model: default
        attributes:
          name: vectorized_name
        full_text:
          - name: vectorized_bio
            template: "{name}\\nBio: {biography}"
            used_attributes: [name, biography]
"""

import logging
import os
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import yaml
from dotenv import load_dotenv

from ..core.exceptions import ConfigurationError
from ..core.types import (
    EmbeddingModelRef,
    ResourceVectorConfig,
    SyncStrategy,
    VectorFieldSpec,
)
from ..pipeline.extractor import template_builder
from ..providers import import_object, resolve_adapter


logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "VECTORSYNC_CONFIG"
DEFAULT_CONFIG_PATH = Path("config/vectorize.yaml")


class ResourceRegistry:
    """
    Immutable mapping of resource type → ResourceVectorConfig.

    Example:
        >>> registry = ResourceRegistry([author_config])
        >>> registry.get("author").strategy
        <SyncStrategy.INLINE: 'inline'>
    """

    def __init__(self, configs: Iterable[ResourceVectorConfig] = ()):
        resolved: Dict[str, ResourceVectorConfig] = {}
        for config in configs:
            if config.resource in resolved:
                raise ConfigurationError(
                    f"Resource {config.resource!r} is configured more than once",
                    resource=config.resource,
                )
            resolved[config.resource] = config
        self._configs = MappingProxyType(resolved)

    def get(self, resource: str) -> ResourceVectorConfig:
        """
        Get the configuration for a resource.

        Raises:
            ConfigurationError: If the resource has no vectorize configuration
        """
        config = self._configs.get(resource)
        if config is None:
            raise ConfigurationError(f"No vectorize configuration for resource {resource!r}", resource=resource)
        return config

    def find(self, resource: str) -> Optional[ResourceVectorConfig]:
        """Get the configuration for a resource, or None."""
        return self._configs.get(resource)

    def resources(self) -> List[str]:
        return list(self._configs.keys())

    def configs(self) -> List[ResourceVectorConfig]:
        return list(self._configs.values())

    def __contains__(self, resource: str) -> bool:
        return resource in self._configs

    def __len__(self) -> int:
        return len(self._configs)


def _apply_env_overrides(options: Dict[str, Any], adapter: str) -> Dict[str, Any]:
    """Fill adapter options from the environment when not set in the file."""
    options = dict(options)
    if adapter == "ollama":
        if "base_url" not in options and os.environ.get("OLLAMA_BASE_URL"):
            options["base_url"] = os.environ["OLLAMA_BASE_URL"]
        if "model" not in options and os.environ.get("OLLAMA_EMBED_MODEL"):
            options["model"] = os.environ["OLLAMA_EMBED_MODEL"]
    return options


def build_model_ref(name: str, data: Mapping[str, Any]) -> EmbeddingModelRef:
    """Build an EmbeddingModelRef from a named model entry."""
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Embedding model {name!r} must be a mapping")

    adapter_ref = data.get("adapter")
    if not adapter_ref:
        raise ConfigurationError(f"Embedding model {name!r} has no adapter")

    options = data.get("options") or {}
    if not isinstance(options, Mapping):
        raise ConfigurationError(f"Options for embedding model {name!r} must be a mapping")

    return EmbeddingModelRef(
        adapter=resolve_adapter(adapter_ref),
        options=_apply_env_overrides(dict(options), str(adapter_ref)),
        validate_dimensions=bool(data.get("validate_dimensions", False)),
    )


def _build_full_text_spec(resource: str, entry: Mapping[str, Any]) -> VectorFieldSpec:
    name = entry.get("name")
    if not name:
        raise ConfigurationError(f"Full-text field on {resource!r} has no name", resource=resource)

    template = entry.get("template")
    builder_ref = entry.get("builder")
    if template and builder_ref:
        raise ConfigurationError(
            f"Full-text field {name!r} on {resource!r} sets both template and builder",
            resource=resource,
        )
    if template:
        builder = template_builder(str(template))
    elif builder_ref:
        builder = import_object(str(builder_ref), "text builder")
        if not callable(builder):
            raise ConfigurationError(f"Text builder {builder_ref} is not callable", resource=resource)
    else:
        raise ConfigurationError(
            f"Full-text field {name!r} on {resource!r} has no template or builder",
            resource=resource,
        )

    used = entry.get("used_attributes")
    if used is not None and not isinstance(used, (list, tuple)):
        raise ConfigurationError(
            f"used_attributes for {name!r} on {resource!r} must be a list", resource=resource
        )

    return VectorFieldSpec.full_text(str(name), builder, used)


def build_resource_config(
    entry: Mapping[str, Any],
    models: Mapping[str, EmbeddingModelRef],
) -> ResourceVectorConfig:
    """Build a ResourceVectorConfig from one ``resources`` entry."""
    resource = entry.get("name")
    if not resource:
        raise ConfigurationError("Resource entry has no name")

    model_name = entry.get("embedding_model")
    if not model_name:
        raise ConfigurationError(f"Resource {resource!r} has no embedding_model", resource=resource)
    model = models.get(model_name)
    if model is None:
        raise ConfigurationError(
            f"Resource {resource!r} references unknown embedding model {model_name!r}",
            resource=resource,
        )

    specs = []
    attributes = entry.get("attributes") or {}
    if not isinstance(attributes, Mapping):
        raise ConfigurationError(f"attributes on {resource!r} must be a mapping", resource=resource)
    for source, dest in attributes.items():
        specs.append(VectorFieldSpec.direct(str(source), str(dest)))

    full_text = entry.get("full_text") or []
    if isinstance(full_text, Mapping):
        full_text = [full_text]
    for item in full_text:
        specs.append(_build_full_text_spec(resource, item))

    return ResourceVectorConfig(
        resource=str(resource),
        specs=tuple(specs),
        model=model,
        strategy=SyncStrategy.parse(entry.get("strategy", "inline")),
        job_type=entry.get("job_type", "update_embeddings"),
    )


def build_registry(data: Mapping[str, Any]) -> ResourceRegistry:
    """Resolve a parsed configuration document into a ResourceRegistry."""
    data = data or {}
    models = {
        name: build_model_ref(name, model)
        for name, model in (data.get("embedding_models") or {}).items()
    }
    configs = [build_resource_config(entry, models) for entry in data.get("resources") or []]
    registry = ResourceRegistry(configs)
    logger.info(f"Loaded vectorize configuration for {len(registry)} resources")
    return registry


def load_registry(config_path: Optional[Union[str, Path]] = None) -> ResourceRegistry:
    """
    Load the registry from a YAML file.

    The path defaults to ``VECTORSYNC_CONFIG`` and then
    ``config/vectorize.yaml``. A ``.env`` file in the working directory is
    loaded first without overriding the existing environment.

    Raises:
        ConfigurationError: If the file is missing or invalid
    """
    load_dotenv(override=False)

    path = Path(config_path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    logger.info(f"Loading config from: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}")

    if data is not None and not isinstance(data, Mapping):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return build_registry(data or {})
