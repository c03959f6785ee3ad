"""Synchronization strategies selected by handler configuration.

Every strategy shares the engine's skeleton (locking, error containment,
reporting) and supplies the variant-specific steps:

- ``DispatchStrategy``: discover unsynchronized objects and publish one
  event per object (plus a document event when configured) for the
  event-driven handler; fire-and-forget.
- ``PushStrategy``: discover unsynchronized objects and process them
  inline: map, upload documents, push, record.
- ``PullStrategy``: fetch a remote collection and hydrate each member into
  the Store by natural key, recording the synchronization.

The ``create_strategy()`` factory maps ``SyncStrategy`` values to
instances.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, Sequence

from zgw_vrijbrp_sync.config_schema import SyncStrategy
from zgw_vrijbrp_sync.errors import (
    ConfigurationError,
    RemoteCallError,
)
from zgw_vrijbrp_sync.sync.discovery import discover, lookup_path
from zgw_vrijbrp_sync.sync.documents import DocumentSynchronizer
from zgw_vrijbrp_sync.sync.models import (
    DocumentResult,
    SyncAction,
    SyncCandidate,
    SyncResult,
)
from zgw_vrijbrp_sync.sync.state import canonical_serialize, extract_remote_id

if TYPE_CHECKING:
    from zgw_vrijbrp_sync.sync.engine import SyncEngine

logger = logging.getLogger(__name__)


def failed_result(
    candidate: SyncCandidate,
    exc: Exception,
    action: SyncAction,
    documents: Sequence[DocumentResult] = (),
) -> SyncResult:
    """Failed ``SyncResult`` for *candidate* carrying the error details."""
    return SyncResult(
        object_id=candidate.object_id,
        business_identifier=candidate.business_identifier,
        action=action,
        success=False,
        error=str(exc),
        error_type=getattr(exc, "error_type", "server_error"),
        documents=list(documents),
    )


def skipped_result(candidate: SyncCandidate, reason: str) -> SyncResult:
    return SyncResult(
        object_id=candidate.object_id,
        business_identifier=candidate.business_identifier,
        action=SyncAction.SKIP,
        success=True,
        error=reason,
    )


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class Strategy(Protocol):
    """Protocol that all synchronization strategies must satisfy."""

    action: SyncAction

    def collect(
        self, engine: SyncEngine, now: datetime
    ) -> list[SyncCandidate]:
        """Return the candidates of one pass."""
        ...  # pragma: no cover

    def process(
        self, engine: SyncEngine, candidate: SyncCandidate
    ) -> SyncResult:
        """Synchronize one candidate.

        Raises:
            SyncError: The candidate failed; the engine records the
                failure and continues with the next candidate.
        """
        ...  # pragma: no cover

    def preview(
        self, engine: SyncEngine, candidate: SyncCandidate
    ) -> SyncResult:
        """Planned outcome for *candidate* without side effects."""
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Store-driven strategies
# ---------------------------------------------------------------------------


class _DiscoveryStrategy:
    action = SyncAction.SKIP

    def collect(
        self, engine: SyncEngine, now: datetime
    ) -> list[SyncCandidate]:
        return discover(
            engine.store, engine.handler, now, engine.identifier_field
        )

    def preview(
        self, engine: SyncEngine, candidate: SyncCandidate
    ) -> SyncResult:
        return SyncResult(
            object_id=candidate.object_id,
            business_identifier=candidate.business_identifier,
            action=self.action,
            success=True,
        )


class DispatchStrategy(_DiscoveryStrategy):
    """Publish candidates for asynchronous processing."""

    action = SyncAction.DISPATCH

    def process(
        self, engine: SyncEngine, candidate: SyncCandidate
    ) -> SyncResult:
        handler = engine.handler
        if not handler.topic:
            raise ConfigurationError(
                f"Handler '{engine.handler_name}' has no topic to dispatch to"
            )

        # Events carry the stored object, not the search projection
        obj = engine.load_object(candidate.object_id)
        body = obj.to_dict()
        engine.bus.publish(handler.topic, {"body": body})

        documents = lookup_path(candidate.payload, handler.documents_field)
        if handler.document_topic and documents:
            engine.bus.publish(
                handler.document_topic,
                {"body": body, "documents": documents},
            )
            logger.debug(
                "Dispatched %d documents of %s on %s",
                len(documents),
                obj.id,
                handler.document_topic,
            )

        return SyncResult(
            object_id=obj.id,
            business_identifier=candidate.business_identifier,
            action=self.action,
            success=True,
        )


class PushStrategy(_DiscoveryStrategy):
    """Map, upload documents and push each candidate inline."""

    action = SyncAction.PUSH

    def process(
        self, engine: SyncEngine, candidate: SyncCandidate
    ) -> SyncResult:
        handler = engine.handler

        # Re-read; the projection may be stale by now
        obj = engine.load_object(candidate.object_id)
        source, mapping, schema = engine.resolve_resources()

        existing = engine.store.find_synchronization(obj.id, source.reference)
        if existing is not None:
            logger.info(
                "Object %s already has synchronization %s, skipping",
                obj.id,
                existing.id,
            )
            return skipped_result(candidate, "already synchronized")

        payload = engine.prepare(obj.to_dict(), mapping, schema)

        document_results: list[DocumentResult] = []
        documents = payload.get("documents")
        if isinstance(documents, list) and documents:
            synchronizer = DocumentSynchronizer(
                engine.client, source, handler.document_endpoint
            )
            payload["documents"], document_results = (
                synchronizer.sync_documents(documents)
            )

        try:
            response = engine.client.request_json(
                source, handler.endpoint, "POST", body=payload
            )
        except RemoteCallError as exc:
            logger.error(
                "Could not synchronize object %s: %s\nFull response: %s",
                obj.id,
                exc,
                exc.response_body or "",
            )
            return failed_result(
                candidate, exc, self.action, documents=document_results
            )

        with engine.store.transaction():
            record = engine.record_sync(obj.id, source, payload, response)
            engine.store.persist(obj)

        logger.info(
            "Pushed %s to %s%s (%s)",
            obj.id,
            source.reference,
            handler.endpoint,
            record.remote_id or "no remote id",
        )
        return SyncResult(
            object_id=obj.id,
            business_identifier=candidate.business_identifier,
            action=self.action,
            success=True,
            remote_ref=record.remote_id,
            documents=document_results,
        )


# ---------------------------------------------------------------------------
# Remote-driven strategy
# ---------------------------------------------------------------------------


class PullStrategy:
    """Hydrate the Store from a remote collection."""

    action = SyncAction.PULL

    def collect(
        self, engine: SyncEngine, now: datetime
    ) -> list[SyncCandidate]:
        source = engine.registry.get_source(engine.handler.source)
        endpoint = engine.handler.list_endpoint
        body = engine.client.request_json(source, endpoint, "GET")

        members: Any = (
            body.get(source.list_key) if isinstance(body, dict) else body
        )
        if not isinstance(members, list):
            raise RemoteCallError(
                f"Response of {endpoint} has no '{source.list_key}' collection",
                response_body=canonical_serialize(body),
            )

        identifier_field = engine.identifier_field
        candidates = []
        for member in members:
            if not isinstance(member, dict):
                logger.warning(
                    "Ignoring non-object member in %s: %r", endpoint, member
                )
                continue
            identifier = lookup_path(member, identifier_field)
            candidates.append(
                SyncCandidate(
                    object_id=extract_remote_id(member) or "",
                    schema_ref=engine.handler.schema_ref,
                    business_identifier=str(identifier)
                    if identifier is not None
                    else None,
                    payload=member,
                )
            )
        logger.debug("Fetched %d members from %s", len(candidates), endpoint)
        return candidates

    def preview(
        self, engine: SyncEngine, candidate: SyncCandidate
    ) -> SyncResult:
        return SyncResult(
            object_id=candidate.object_id,
            business_identifier=candidate.business_identifier,
            action=self.action,
            success=True,
        )

    def process(
        self, engine: SyncEngine, candidate: SyncCandidate
    ) -> SyncResult:
        handler = engine.handler
        source, mapping, schema = engine.resolve_resources(
            require_mapping=False
        )
        identifier_field = handler.identifier_field or schema.identifier_field
        mapped = engine.prepare(candidate.payload, mapping, schema)
        identifier = mapped.get(identifier_field)

        if handler.skip_unchanged and identifier is not None:
            unchanged = self._unchanged(
                engine, source.reference, candidate, identifier_field, identifier
            )
            if unchanged is not None:
                return unchanged

        with engine.store.transaction():
            obj = engine.hydrator.hydrate(
                mapped, handler.schema_ref, identifier_field
            )
            created = obj.date_modified is None
            record = engine.record_sync(
                obj.id, source, mapped, candidate.payload
            )

        return SyncResult(
            object_id=obj.id,
            business_identifier=str(identifier),
            action=SyncAction.CREATE_LOCAL if created else SyncAction.PULL,
            success=True,
            remote_ref=record.remote_id,
        )

    @staticmethod
    def _unchanged(
        engine: SyncEngine,
        source_id: str,
        candidate: SyncCandidate,
        identifier_field: str,
        identifier: Any,
    ) -> SyncResult | None:
        handler = engine.handler
        existing = engine.hydrator.resolver.resolve(
            handler.schema_ref,
            identifier,
            identifier_field,
        )
        if not existing.persisted:
            return None
        record = engine.store.find_synchronization(existing.id, source_id)
        if record is None or not engine.tracker.is_unchanged(
            record, candidate.payload
        ):
            return None

        engine.tracker.save(
            record.model_copy(update={"last_checked": engine.clock()})
        )
        logger.info("Remote member for %s is unchanged", existing.id)
        return SyncResult(
            object_id=existing.id,
            business_identifier=str(identifier),
            action=SyncAction.SKIP,
            success=True,
            error="unchanged since last synchronization",
        )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_STRATEGY_MAP: dict[SyncStrategy, type] = {
    SyncStrategy.DISPATCH: DispatchStrategy,
    SyncStrategy.PUSH: PushStrategy,
    SyncStrategy.PULL: PullStrategy,
}


def create_strategy(strategy: SyncStrategy | str) -> Strategy:
    """Create the strategy for a handler's ``strategy`` setting.

    Raises:
        ConfigurationError: If the strategy is not recognised.
    """
    try:
        cls = _STRATEGY_MAP[SyncStrategy(strategy)]
    except ValueError:
        raise ConfigurationError(
            f"Unknown sync strategy: '{strategy}'. Valid strategies: "
            f"{sorted(s.value for s in SyncStrategy)}"
        ) from None
    return cls()  # type: ignore[return-value]

