"""Synchronization state tracking.

Owns the lifecycle of ``SynchronizationRecord`` objects: looking up (or
allocating) the record for an object/source pair, stamping it after a
successful remote round-trip, and writing it through the Store.

Key design choices:

* **Content hashing** -- ``content_hash()`` serializes the response body
  canonically (sorted keys, compact separators, UTF-8) before SHA-384,
  so equal content always hashes equally regardless of key order.
* **Unconditional update** -- ``record_sync()`` always restamps the
  record; ``is_unchanged()`` is available for callers that opt into
  skipping no-op rewrites.
* **Immutable records** -- updates return a new record via
  ``model_copy(update=...)``; nothing is written until ``save()``.
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime
from typing import Any, Callable

from zgw_vrijbrp_sync.store import ObjectStore, utcnow
from zgw_vrijbrp_sync.sync.models import SynchronizationRecord

logger = logging.getLogger(__name__)

REMOTE_ID_KEYS = ("@id", "id", "url")


def canonical_serialize(body: Any) -> str:
    """Deterministic JSON text for *body*."""
    return json.dumps(
        body,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def extract_remote_id(body: Any) -> str | None:
    """Return the identifier a remote response carries, if any."""
    if not isinstance(body, dict):
        return None
    for key in REMOTE_ID_KEYS:
        value = body.get(key)
        if value not in (None, ""):
            return str(value)
    return None


class SyncStateTracker:
    """Create, update and persist synchronization records.

    Args:
        store: Object store holding the records.
        clock: Callable returning the current UTC time.
    """

    def __init__(
        self,
        store: ObjectStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.clock = clock

    # ------------------------------------------------------------------
    # Content hashing
    # ------------------------------------------------------------------

    @staticmethod
    def content_hash(body: Any) -> str:
        """SHA-384 hex digest of the canonical serialization of *body*."""
        return hashlib.sha384(
            canonical_serialize(body).encode("utf-8")
        ).hexdigest()

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def find_or_create(
        self,
        object_id: str,
        source_id: str,
        entity: str | None = None,
    ) -> SynchronizationRecord:
        """Return the record for the pair, or a new unsaved one."""
        record = self.store.find_synchronization(object_id, source_id)
        if record is not None:
            return record
        return SynchronizationRecord(
            source_id=source_id, object_id=object_id, entity=entity
        )

    def record_sync(
        self,
        record: SynchronizationRecord,
        pushed_payload: Any,
        response_body: Any,
    ) -> SynchronizationRecord:
        """Stamp *record* after a successful round-trip.

        ``last_synced``, ``last_checked`` and ``source_last_changed`` are
        set to now and ``content_hash`` to the hash of *response_body*.

        Returns:
            The updated (unsaved) record.
        """
        now = self.clock()
        new_hash = self.content_hash(response_body)
        if pushed_payload is not None:
            logger.debug(
                "Recording sync of %s to %s (payload hash %s)",
                record.object_id,
                record.source_id,
                self.content_hash(pushed_payload)[:12],
            )
        return record.model_copy(
            update={
                "last_synced": now,
                "last_checked": now,
                "source_last_changed": now,
                "content_hash": new_hash,
                "remote_id": extract_remote_id(response_body)
                or record.remote_id,
            }
        )

    def is_unchanged(
        self, record: SynchronizationRecord, response_body: Any
    ) -> bool:
        """``True`` if *response_body* hashes to the record's stored hash."""
        return (
            record.content_hash is not None
            and record.content_hash == self.content_hash(response_body)
        )

    def save(self, record: SynchronizationRecord) -> SynchronizationRecord:
        """Persist *record* through the Store."""
        return self.store.save_synchronization(record)
