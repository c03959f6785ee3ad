"""Resolve sources, mappings and schemas by reference.

Handlers name their collaborators by reference string.  The registry is
built from the unified configuration and turns an unknown or malformed
reference into a ``ConfigurationError`` so a single misconfigured
candidate can be reported without touching the Store.
"""

from __future__ import annotations

import logging

from .config_schema import (
    MappingConfig,
    SchemaConfig,
    SourceConfig,
    UnifiedConfig,
)
from .errors import ConfigurationError
from .validators import validate_reference

logger = logging.getLogger(__name__)


class ResourceRegistry:
    """Lookup of configured resources by reference.

    Args:
        sources: Known remote sources.
        mappings: Known mapping definitions.
        schemas: Known schemas.
    """

    def __init__(
        self,
        sources: list[SourceConfig] | None = None,
        mappings: list[MappingConfig] | None = None,
        schemas: list[SchemaConfig] | None = None,
    ) -> None:
        self._sources = {s.reference: s for s in sources or []}
        self._mappings = {m.reference: m for m in mappings or []}
        self._schemas = {s.reference: s for s in schemas or []}

    @classmethod
    def from_config(cls, config: UnifiedConfig) -> ResourceRegistry:
        return cls(config.sources, config.mappings, config.schemas)

    def get_source(self, reference: str | None) -> SourceConfig:
        return self._get("source", self._sources, reference)

    def get_mapping(self, reference: str | None) -> MappingConfig:
        return self._get("mapping", self._mappings, reference)

    def get_schema(self, reference: str | None) -> SchemaConfig:
        return self._get("schema", self._schemas, reference)

    def find_schema(self, reference: str | None) -> SchemaConfig | None:
        """Like ``get_schema()`` but returns ``None`` for unknown references."""
        return self._schemas.get(reference) if reference else None

    @staticmethod
    def _get(kind: str, items: dict, reference: str | None):
        is_valid, message = validate_reference(reference)
        if not is_valid:
            raise ConfigurationError(f"Invalid {kind} reference: {message}")
        try:
            return items[reference]
        except KeyError:
            logger.error("Could not find a %s for reference %s", kind, reference)
            raise ConfigurationError(
                f"Could not find a {kind} for reference '{reference}'"
            ) from None
