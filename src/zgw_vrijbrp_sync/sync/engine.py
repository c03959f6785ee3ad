"""Synchronization engine that orchestrates one pass of a handler.

The ``SyncEngine`` ties together discovery, schema flattening, mapping,
hydration, document synchronization and sync-state tracking.  A pass:

1. Collects candidates through the handler's strategy (Store discovery or
   a remote collection).
2. Fans candidates out, bounded by ``max_parallel``.
3. Takes the per-object lock; a candidate locked by another pass is
   skipped.
4. Runs the strategy step (dispatch, push or pull) for the candidate.
5. Records the outcome in a ``SyncResult``.
6. Builds and returns a ``SyncReport``.

Error handling is per candidate: a failed candidate is reported and left
unsynchronized for the next pass; it never aborts the batch.  Passes may
be cancelled between candidates through a ``threading.Event``.
"""

from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime
from functools import partial
from typing import Any, Callable

from zgw_vrijbrp_sync.bus import EventBus
from zgw_vrijbrp_sync.config_schema import (
    HandlerConfig,
    MappingConfig,
    SchemaConfig,
    SourceConfig,
)
from zgw_vrijbrp_sync.core.async_utils import run_limited
from zgw_vrijbrp_sync.core.client import GatewayClient
from zgw_vrijbrp_sync.errors import (
    ObjectNotFoundError,
    SyncError,
    build_error_response,
    corrective_action,
)
from zgw_vrijbrp_sync.resources import ResourceRegistry
from zgw_vrijbrp_sync.store import ObjectStore, StoredObject, utcnow
from zgw_vrijbrp_sync.sync.discovery import (
    candidate_from_document,
    matches_case_type,
)
from zgw_vrijbrp_sync.sync.hydrator import Hydrator
from zgw_vrijbrp_sync.sync.mapper import FieldMapper, Mapper
from zgw_vrijbrp_sync.sync.models import (
    SyncCandidate,
    SynchronizationRecord,
    SyncReport,
    SyncResult,
)
from zgw_vrijbrp_sync.sync.reporter import Observer, format_result_line
from zgw_vrijbrp_sync.sync.resolver import NaturalKeyResolver
from zgw_vrijbrp_sync.sync.schema import flatten_json_schema
from zgw_vrijbrp_sync.sync.state import SyncStateTracker
from zgw_vrijbrp_sync.sync.strategies import (
    PushStrategy,
    Strategy,
    create_strategy,
    failed_result,
    skipped_result,
)

logger = logging.getLogger(__name__)


class SyncEngine:
    """Run synchronization passes for one handler.

    Args:
        store: Object store holding local objects and sync records.
        client: Remote caller.
        registry: Resolves source, mapping and schema references.
        bus: Event bus the dispatch strategy publishes to.
        handler_name: Name of the handler configuration.
        handler: The handler configuration.
        mapper: Mapping collaborator; defaults to ``FieldMapper``.
        clock: Callable returning the current UTC time.
        max_parallel: Candidates processed concurrently; defaults to the
            handler's ``maxParallel``.
    """

    # Ids of objects being synchronized, shared by every engine in the
    # process so overlapping passes never submit the same object twice.
    # An id is held only while its candidate runs.
    _locked_ids: set[str] = set()
    _locked_ids_guard = threading.Lock()

    def __init__(
        self,
        store: ObjectStore,
        client: GatewayClient,
        registry: ResourceRegistry,
        bus: EventBus,
        handler_name: str,
        handler: HandlerConfig,
        mapper: Mapper | None = None,
        clock: Callable[[], datetime] = utcnow,
        max_parallel: int | None = None,
    ) -> None:
        self.store = store
        self.client = client
        self.registry = registry
        self.bus = bus
        self.handler_name = handler_name
        self.handler = handler
        self.mapper = mapper or FieldMapper()
        self.clock = clock
        self.max_parallel = max_parallel or handler.max_parallel

        self.strategy = create_strategy(handler.strategy)
        self.tracker = SyncStateTracker(store, clock)
        self.hydrator = Hydrator(
            store, NaturalKeyResolver(store, self.identifier_field)
        )
        self._push = (
            self.strategy
            if isinstance(self.strategy, PushStrategy)
            else PushStrategy()
        )

    @property
    def identifier_field(self) -> str:
        """Field holding the business identifier of the handler's schema."""
        if self.handler.identifier_field:
            return self.handler.identifier_field
        schema = self.registry.find_schema(self.handler.schema_ref)
        return schema.identifier_field if schema else "identificatie"

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def run(
        self,
        dry_run: bool = False,
        observer: Observer | None = None,
        cancel_event: threading.Event | None = None,
    ) -> SyncReport:
        """Execute one pass.

        Args:
            dry_run: If ``True``, report planned actions without remote
                calls or Store writes.
            observer: Optional progress sink.
            cancel_event: When set, candidates not yet started are
                reported as skipped.

        Returns:
            A ``SyncReport`` summarising what was (or would be) done.
        """
        started = self.clock()
        strategy_name = self.handler.strategy.value

        try:
            candidates = self.strategy.collect(self, started)
        except SyncError as exc:
            logger.error(
                "Could not collect candidates for handler %s: %s",
                self.handler_name,
                exc,
            )
            return SyncReport(
                handler_name=self.handler_name,
                strategy=strategy_name,
                dry_run=dry_run,
                results=[
                    SyncResult(
                        object_id="",
                        action=self.strategy.action,
                        success=False,
                        error=str(exc),
                        error_type=exc.error_type,
                    )
                ],
                started_at=started.isoformat(),
                completed_at=self.clock().isoformat(),
            )

        logger.info(
            "Found %d candidates for handler %s (%s)",
            len(candidates),
            self.handler_name,
            strategy_name,
        )
        if observer is not None:
            observer.section(self.handler_name)
            observer.writeln(
                f"Found {len(candidates)} candidates to {strategy_name}."
            )

        results = run_limited(
            [
                partial(
                    self._run_candidate,
                    candidate,
                    dry_run,
                    observer,
                    cancel_event,
                )
                for candidate in candidates
            ],
            self.max_parallel,
        )

        return SyncReport(
            handler_name=self.handler_name,
            strategy=strategy_name,
            dry_run=dry_run,
            candidates_found=len(candidates),
            results=results,
            started_at=started.isoformat(),
            completed_at=self.clock().isoformat(),
        )

    def _run_candidate(
        self,
        candidate: SyncCandidate,
        dry_run: bool,
        observer: Observer | None,
        cancel_event: threading.Event | None,
    ) -> SyncResult:
        if cancel_event is not None and cancel_event.is_set():
            result = skipped_result(candidate, "pass cancelled")
        elif dry_run:
            result = self.strategy.preview(self, candidate)
        else:
            result = self._guarded(self.strategy, candidate)

        if observer is not None:
            observer.writeln(format_result_line(result))
        return result

    def _guarded(
        self, strategy: Strategy, candidate: SyncCandidate
    ) -> SyncResult:
        """Run one strategy step under the object lock, containing errors."""
        label = candidate.object_id or candidate.business_identifier or "?"
        object_id = candidate.object_id
        if object_id and not self._try_lock(object_id):
            logger.info(
                "Object %s is being synchronized by another pass, skipping",
                label,
            )
            return skipped_result(candidate, "locked by another pass")

        try:
            return strategy.process(self, candidate)
        except SyncError as exc:
            logger.error("Could not synchronize %s: %s", label, exc)
            return failed_result(candidate, exc, strategy.action)
        except Exception as exc:
            logger.exception("Unexpected error synchronizing %s", label)
            return failed_result(candidate, exc, strategy.action)
        finally:
            if object_id:
                self._unlock(object_id)

    @classmethod
    def _try_lock(cls, object_id: str) -> bool:
        """Claim *object_id* unless another pass holds it."""
        with cls._locked_ids_guard:
            if object_id in cls._locked_ids:
                return False
            cls._locked_ids.add(object_id)
            return True

    @classmethod
    def _unlock(cls, object_id: str) -> None:
        with cls._locked_ids_guard:
            cls._locked_ids.discard(object_id)

    # ------------------------------------------------------------------
    # Event-driven processing
    # ------------------------------------------------------------------

    def handle_event(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Push the object named by a dispatched ``{"body": {...}}`` event.

        The object is re-read from the Store; a missing object or one whose
        case type no longer matches the handler is rejected.

        Returns:
            A structured response: the result on success, or an
            ``{error, message, action}`` dict.
        """
        body = payload.get("body") if isinstance(payload, dict) else None
        object_id = body.get("_id") if isinstance(body, dict) else None
        if not object_id:
            message = "Event carries no object body with an '_id'"
            logger.error(message)
            return build_error_response(
                "invalid_event", message, corrective_action("invalid_event")
            )

        found = self.store.search(
            {"_id": object_id}, [self.handler.schema_ref]
        )
        if not found["results"]:
            message = f"Could not find an object with id {object_id}"
            logger.error(message)
            return build_error_response(
                "not_found", message, corrective_action("not_found")
            )

        document = found["results"][0]
        if not matches_case_type(self.handler, document):
            message = (
                f"Object {object_id} does not match the case types of "
                f"handler '{self.handler_name}'"
            )
            logger.error(message)
            return build_error_response(
                "invalid_case_type",
                message,
                corrective_action("invalid_case_type"),
            )

        candidate = candidate_from_document(document, self.identifier_field)
        return event_response(self._guarded(self._push, candidate))

    # ------------------------------------------------------------------
    # Steps shared by the strategies
    # ------------------------------------------------------------------

    def load_object(self, object_id: str) -> StoredObject:
        """Re-read *object_id* from the Store.

        Raises:
            ObjectNotFoundError: The object no longer exists.
        """
        obj = self.store.get(object_id)
        if obj is None:
            raise ObjectNotFoundError(
                f"Could not find an object with id {object_id}"
            )
        return obj

    def resolve_resources(
        self, require_mapping: bool = True
    ) -> tuple[SourceConfig, MappingConfig | None, SchemaConfig]:
        """Resolve the handler's source, mapping and schema references.

        Raises:
            ConfigurationError: A reference is missing or unknown.
        """
        source = self.registry.get_source(self.handler.source)
        mapping = (
            self.registry.get_mapping(self.handler.mapping)
            if require_mapping or self.handler.mapping
            else None
        )
        schema = self.registry.get_schema(self.handler.schema_ref)
        return source, mapping, schema

    def prepare(
        self,
        data: dict[str, Any],
        mapping: MappingConfig | None,
        schema: SchemaConfig | None = None,
    ) -> dict[str, Any]:
        """Flatten an embedded ``schema`` fragment, then map *data*.

        Pointers in the fragment resolve against the schema's configured
        ``definition`` when there is one, otherwise against the fragment.
        """
        data = copy.deepcopy(data)
        fragment = data.get("schema")
        if isinstance(fragment, dict):
            base = schema.definition if schema is not None else None
            data["schema"] = flatten_json_schema(fragment, base)
        if mapping is None:
            return data
        return self.mapper.map(mapping, data)

    def record_sync(
        self,
        object_id: str,
        source: SourceConfig,
        pushed_payload: Any,
        response_body: Any,
    ) -> SynchronizationRecord:
        """Create or update and save the record for *object_id*/*source*."""
        record = self.tracker.find_or_create(
            object_id, source.reference, entity=self.handler.schema_ref
        )
        if self.handler.skip_unchanged and self.tracker.is_unchanged(
            record, response_body
        ):
            logger.debug("Response for %s is unchanged", object_id)
            record = record.model_copy(update={"last_checked": self.clock()})
        else:
            record = self.tracker.record_sync(
                record, pushed_payload, response_body
            )
        return self.tracker.save(record)


def event_response(result: SyncResult) -> dict[str, Any]:
    """Structured response for an event-driven ``SyncResult``."""
    if not result.success:
        error_type = result.error_type or "server_error"
        error = build_error_response(
            error_type, result.error or "", corrective_action(error_type)
        )
        error["object_id"] = result.object_id
        return error

    response: dict[str, Any] = {
        "success": True,
        "object_id": result.object_id,
        "action": result.action.value,
        "remote_ref": result.remote_ref,
        "documents": [d.model_dump() for d in result.documents],
    }
    if result.error:
        response["message"] = result.error
    return response
