"""Pydantic models for the synchronization engine.

Defines the core data contracts used across all sync modules:

- ``SyncAction``: Enum of possible per-candidate outcomes.
- ``SyncCandidate``: A stored object selected by discovery.
- ``SynchronizationRecord``: Link between one object and one remote source.
- ``DocumentResult``: Outcome of synchronizing one document sub-resource.
- ``SyncResult``: Outcome of synchronizing one candidate.
- ``SyncReport``: Aggregate results for a full pass.

All models are frozen (immutable); updated records are produced with
``model_copy(update=...)``.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class SyncAction(str, Enum):
    """Possible outcomes for a candidate in one pass."""

    SKIP = "skip"
    DISPATCH = "dispatch"
    PUSH = "push"
    PULL = "pull"
    CREATE_LOCAL = "create_local"


class SyncCandidate(BaseModel):
    """A stored object that discovery selected for synchronization.

    Attributes:
        object_id: Store id of the object.
        schema_ref: Reference of the object's schema (its type).
        business_identifier: The object's natural key, when present.
        created_at: Creation timestamp of the object.
        synchronization_ref: Id of an existing synchronization record.
        payload: The searchable projection the Store returned.
    """

    object_id: str
    schema_ref: str
    business_identifier: str | None = None
    created_at: datetime | None = None
    synchronization_ref: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


class SynchronizationRecord(BaseModel):
    """Bookkeeping for one (object, remote source) pair.

    Attributes:
        id: Record id.
        source_id: Reference of the remote source.
        object_id: Store id of the local object.
        entity: Schema reference of the local object.
        remote_id: Identifier the remote system returned, if any.
        last_synced: Last successful push or pull.
        source_last_changed: Remote-side modification time as observed.
        last_checked: Most recent comparison.
        content_hash: SHA-384 of the last synchronized response body.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source_id: str
    object_id: str
    entity: str | None = None
    remote_id: str | None = None
    last_synced: datetime | None = None
    source_last_changed: datetime | None = None
    last_checked: datetime | None = None
    content_hash: str | None = None

    model_config = {"frozen": True}


class DocumentResult(BaseModel):
    """Result of synchronizing one document of a candidate."""

    index: int
    filename: str | None = None
    remote_ref: str | None = None
    success: bool
    error: str | None = None
    error_type: str | None = None

    model_config = {"frozen": True}


class SyncResult(BaseModel):
    """Result of synchronizing one candidate.

    Attributes:
        object_id: Store id of the object (empty for remote-only items
            that failed before hydration).
        business_identifier: Natural key of the object, when known.
        action: Sync action that was performed.
        success: Whether the operation succeeded.
        error: Error message if the operation failed or was skipped.
        error_type: ``SyncError.error_type`` of the failure.
        remote_ref: Remote identifier returned by a push.
        documents: Per-document outcomes.
    """

    object_id: str
    business_identifier: str | None = None
    action: SyncAction
    success: bool
    error: str | None = None
    error_type: str | None = None
    remote_ref: str | None = None
    documents: list[DocumentResult] = []

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for a full pass.

    Attributes:
        handler_name: Name of the handler configuration used.
        strategy: Strategy value of the handler.
        dry_run: Whether this was a dry-run (no changes applied).
        candidates_found: Number of candidates discovery returned.
        results: List of individual results.
        started_at: ISO 8601 timestamp when the pass started.
        completed_at: ISO 8601 timestamp when the pass completed.
    """

    handler_name: str
    strategy: str
    dry_run: bool = False
    candidates_found: int = 0
    results: list[SyncResult] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def dispatched(self) -> list[SyncResult]:
        """Successful results where action is DISPATCH."""
        return [
            r
            for r in self.results
            if r.action == SyncAction.DISPATCH and r.success
        ]

    @property
    def pushed(self) -> list[SyncResult]:
        """Successful results where action is PUSH."""
        return [
            r for r in self.results if r.action == SyncAction.PUSH and r.success
        ]

    @property
    def pulled(self) -> list[SyncResult]:
        """Successful results where action is PULL or CREATE_LOCAL."""
        return [
            r
            for r in self.results
            if r.action in (SyncAction.PULL, SyncAction.CREATE_LOCAL)
            and r.success
        ]

    @property
    def skipped(self) -> list[SyncResult]:
        """Results where action is SKIP."""
        return [r for r in self.results if r.action == SyncAction.SKIP]

    @property
    def errors(self) -> list[SyncResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]

    @property
    def document_errors(self) -> list[DocumentResult]:
        """Failed documents across all results."""
        return [
            d for r in self.results for d in r.documents if not d.success
        ]

    def summary(self) -> str:
        """Format a human-readable summary of the pass.

        Returns:
            Multi-line summary string with counts by action.
        """
        lines = [
            f"Sync report for handler '{self.handler_name}' ({self.strategy})"
            + (" (dry run)" if self.dry_run else ""),
            f"  Candidates:     {self.candidates_found}",
            f"  Dispatched:     {len(self.dispatched)}",
            f"  Pushed:         {len(self.pushed)}",
            f"  Pulled:         {len(self.pulled)}",
            f"  Skipped:        {len(self.skipped)}",
            f"  Errors:         {len(self.errors)}",
            f"  Document errors: {len(self.document_errors)}",
            f"  Total:          {len(self.results)}",
        ]
        return "\n".join(lines)
