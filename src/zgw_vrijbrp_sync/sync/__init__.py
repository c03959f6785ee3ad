"""Schema-driven synchronization engine.

Public API for reconciling objects of the local case store with a remote
case-handling API.

Architecture
------------
A **pass** discovers candidates (objects without a synchronization record
created before a configurable offset, or members of a remote collection),
flattens embedded JSON Schema fragments, maps each candidate to the
target shape, synchronizes document sub-resources, pushes or hydrates
the result, and records a ``SynchronizationRecord`` hashed over the
remote response.  Failures are contained per candidate and per document;
unsynchronized candidates are picked up again by the next pass.

Modules:

- ``engine``     -- ``SyncEngine``: orchestrates a pass and event handling.
- ``strategies`` -- dispatch / push / pull strategies, ``create_strategy()``.
- ``discovery``  -- time modifiers, discovery filter, candidate extraction.
- ``schema``     -- ``flatten_json_schema()``: inline ``$ref`` pointers.
- ``mapper``     -- ``FieldMapper``: config-driven field mapping.
- ``resolver``   -- ``NaturalKeyResolver``: business identifier to object.
- ``hydrator``   -- ``Hydrator``: find-or-create, merge and persist.
- ``state``      -- ``SyncStateTracker``: content hashes and records.
- ``documents``  -- ``DocumentSynchronizer``: document uploads.
- ``models``     -- ``SyncAction``, ``SyncCandidate``,
  ``SynchronizationRecord``, ``SyncResult``, ``SyncReport``.
- ``reporter``   -- human-readable and JSON report formatting.

Usage example
-------------
::

    from zgw_vrijbrp_sync.bus import InMemoryBus
    from zgw_vrijbrp_sync.config_schema import HandlerConfig
    from zgw_vrijbrp_sync.core import GatewayClient
    from zgw_vrijbrp_sync.resources import ResourceRegistry
    from zgw_vrijbrp_sync.store import JsonObjectStore
    from zgw_vrijbrp_sync.sync import SyncEngine, format_sync_report

    handler = HandlerConfig(
        strategy="push",
        schema="https://vng.opencatalogi.nl/schemas/zrc.zaak.schema.json",
        source="vrijbrp-dossiers",
        mapping="vrijbrp-request",
        caseTypes="B1021,B0237",
    )

    engine = SyncEngine(
        store=JsonObjectStore(".zgw_sync/store.json"),
        client=GatewayClient(),
        registry=registry,           # ResourceRegistry instance
        bus=InMemoryBus(),
        handler_name="cases-to-vrijbrp",
        handler=handler,
    )

    # Dry-run first to preview candidates
    preview = engine.run(dry_run=True)
    print(format_sync_report(preview))

    report = engine.run()
    print(format_sync_report(report))
"""

from .engine import SyncEngine
from .mapper import FieldMapper
from .models import (
    DocumentResult,
    SyncAction,
    SyncCandidate,
    SynchronizationRecord,
    SyncReport,
    SyncResult,
)
from .reporter import (
    ConsoleObserver,
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)
from .schema import flatten_json_schema
from .state import SyncStateTracker

__all__ = [
    "ConsoleObserver",
    "DocumentResult",
    "FieldMapper",
    "SyncAction",
    "SyncCandidate",
    "SyncEngine",
    "SyncReport",
    "SyncResult",
    "SyncStateTracker",
    "SynchronizationRecord",
    "flatten_json_schema",
    "format_dry_run_preview",
    "format_sync_report",
    "report_to_json",
]
