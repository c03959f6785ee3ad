"""Unified configuration schema for zgw_vrijbrp_sync.

Defines Pydantic models for the unified config structure: the remote
sources, mapping definitions, schemas and synchronization handlers that
the engine consumes, plus engine and logging settings.

Handler settings accept the camelCase names used by the gateway action
configuration (``beforeTimeModifier``, ``caseTypes`` ...) as well as
their snake_case field names.

Usage:
    from zgw_vrijbrp_sync.config_schema import UnifiedConfig, build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Resource models
# ---------------------------------------------------------------------------


class SourceConfig(BaseModel):
    """A remote source the engine can call.

    Attributes:
        reference: Stable identifier used by handlers to select the source.
        location: Base URL; endpoints are appended to it.
        headers: Headers sent with every call.
        timeout: Request timeout in seconds.
        list_key: Key holding collection members in list responses.
    """

    reference: str
    location: str
    headers: dict[str, str] = Field(default_factory=dict)
    timeout: float = Field(default=30.0, gt=0)
    list_key: str = "hydra:member"

    model_config = {"frozen": True}

    @field_validator("location")
    @classmethod
    def _check_location(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError(
                f"Invalid source location '{value}': must start with http:// or https://"
            )
        return value.removesuffix("/")


class MappingConfig(BaseModel):
    """A declarative field mapping.

    ``mapping`` maps output paths (dotted) to either an input path, a
    ``{"const": value}`` literal, or a ``{"foreach": path, "mapping": {...}}``
    sub-mapping applied to each element of a list.
    """

    reference: str
    mapping: dict[str, Any] = Field(default_factory=dict)
    passthrough: bool = False
    unset: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}


class SchemaConfig(BaseModel):
    """An object type known to the Store."""

    reference: str
    identifier_field: str = "identificatie"
    definition: dict[str, Any] | None = None

    model_config = {"frozen": True}


class SyncStrategy(str, Enum):
    """How a handler moves objects between the two systems."""

    DISPATCH = "dispatch"
    PUSH = "push"
    PULL = "pull"


class HandlerConfig(BaseModel):
    """Configuration of one synchronization handler."""

    strategy: SyncStrategy = SyncStrategy.PUSH
    before_time_modifier: str = Field(
        default="-10 minutes", alias="beforeTimeModifier"
    )
    schema_ref: str = Field(alias="schema")
    source: str | None = None
    mapping: str | None = None
    case_types: list[str] = Field(default_factory=list, alias="caseTypes")
    case_type_prefix: str | None = Field(
        default=None, alias="caseTypePrefix"
    )
    case_type_field: str = Field(
        default="embedded.zaaktype.identificatie", alias="caseTypeField"
    )
    topic: str | None = None
    document_topic: str | None = Field(
        default=None, alias="documentTopic"
    )
    documents_field: str = Field(
        default="embedded.zaakinformatieobjecten", alias="documentsField"
    )
    endpoint: str = "/api/requests"
    document_endpoint: str = Field(
        default="/api/documents", alias="documentEndpoint"
    )
    list_endpoint: str = Field(default="/api/requests", alias="listEndpoint")
    identifier_field: str | None = Field(
        default=None, alias="identifierField"
    )
    max_parallel: int = Field(default=1, ge=1, le=64, alias="maxParallel")
    skip_unchanged: bool = Field(default=False, alias="skipUnchanged")

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator("case_types", mode="before")
    @classmethod
    def _split_case_types(cls, value: Any) -> Any:
        # Comma separated string in gateway configuration
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class EngineConfig(BaseModel):
    """Engine runtime settings (``sync`` section)."""

    store_path: str = Field(
        default=".zgw_sync/store.json", description="JSON store file"
    )
    max_parallel: int = Field(
        default=1,
        ge=1,
        le=64,
        description="Maximum candidates processed concurrently (1-64)",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    sources: list[SourceConfig] = Field(default_factory=list)
    mappings: list[MappingConfig] = Field(default_factory=list)
    schemas: list[SchemaConfig] = Field(default_factory=list)
    handlers: dict[str, HandlerConfig] = Field(default_factory=dict)
    sync: EngineConfig = Field(default_factory=EngineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully: anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)
