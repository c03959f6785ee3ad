"""Object store used by the synchronization engine.

The engine talks to storage through the ``ObjectStore`` protocol: lookup by
id, lookup by filter over a searchable projection, persistence inside a
scoped transaction, and synchronization-record bookkeeping.

Two implementations are provided:

* ``InMemoryObjectStore`` -- dict-backed, snapshot/rollback transactions.
* ``JsonObjectStore`` -- the same, written atomically to a JSON file each
  time an outermost transaction commits.

Search projection
-----------------
Each stored object is searchable as its data fields plus::

    {
        "_id": "<id>",
        "_self": {
            "id": "<id>",
            "schema": {"ref": "<schema reference>"},
            "dateCreated": "YYYY-MM-DD HH:MM:SS",
            "dateModified": "YYYY-MM-DD HH:MM:SS" | None,
            "synchronizations": ["<record id>", ...] | None,
        },
    }

Filter keys are dotted paths into the projection.  Predicates:

* ``"IS NULL"`` / ``"IS NOT NULL"`` -- absent, ``None`` or empty list.
* ``{"like": text}`` -- case-insensitive substring match.
* ``{"before": ts}`` / ``{"after": ts}`` -- strict timestamp comparison;
  timestamps are ``YYYY-MM-DD HH:MM:SS`` strings or datetimes, UTC.
* ``[a, b, ...]`` -- value is one of the listed values.
* any other value -- equality.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator, Protocol

from .errors import DuplicateSynchronizationError

if TYPE_CHECKING:
    from .sync.models import SynchronizationRecord

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime as ``YYYY-MM-DD HH:MM:SS`` in UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: datetime | str) -> datetime:
    """Parse a datetime or timestamp string; naive values are taken as UTC."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.strip())
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class StoredObject:
    """A handle to one object of a schema.

    ``persisted`` is ``False`` for freshly allocated objects until the
    Store writes them.
    """

    schema_ref: str
    data: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    date_created: datetime = field(default_factory=utcnow)
    date_modified: datetime | None = None
    persisted: bool = False

    def hydrate(self, fields: dict[str, Any]) -> None:
        """Overwrite each given field; nested values are replaced whole."""
        for key, value in fields.items():
            self.data[key] = copy.deepcopy(value)

    def to_dict(self) -> dict[str, Any]:
        """Object data with its id, as sent in events."""
        return {"_id": self.id, **copy.deepcopy(self.data)}


class ObjectStore(Protocol):
    """Protocol the engine requires from storage."""

    def get(self, object_id: str) -> StoredObject | None: ...  # pragma: no cover

    def search(
        self, filters: dict[str, Any], schema_refs: list[str] | None = None
    ) -> dict[str, Any]: ...  # pragma: no cover

    def persist(self, obj: StoredObject) -> StoredObject: ...  # pragma: no cover

    def find_synchronization(
        self, object_id: str, source_id: str
    ) -> SynchronizationRecord | None: ...  # pragma: no cover

    def save_synchronization(
        self, record: SynchronizationRecord
    ) -> SynchronizationRecord: ...  # pragma: no cover

    def transaction(self) -> Any: ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Filter evaluation
# ---------------------------------------------------------------------------


_MISSING = object()


def _lookup(document: Any, path: str) -> Any:
    """Follow a dotted path through dicts (and list indexes)."""
    current = document
    for segment in path.split("."):
        if isinstance(current, dict) and segment in current:
            current = current[segment]
        elif isinstance(current, list) and segment.isdigit() and int(
            segment
        ) < len(current):
            current = current[int(segment)]
        else:
            return _MISSING
    return current


def _is_null(value: Any) -> bool:
    return value is _MISSING or value is None or value == []


def _matches(value: Any, predicate: Any) -> bool:
    if predicate == "IS NULL":
        return _is_null(value)
    if predicate == "IS NOT NULL":
        return not _is_null(value)

    if isinstance(predicate, dict):
        for operator, operand in predicate.items():
            if value is _MISSING or value is None:
                return False
            if operator == "like":
                if str(operand).lower() not in str(value).lower():
                    return False
            elif operator == "before":
                if not parse_timestamp(value) < parse_timestamp(operand):
                    return False
            elif operator == "after":
                if not parse_timestamp(value) > parse_timestamp(operand):
                    return False
            else:
                raise ValueError(f"Unsupported filter operator '{operator}'")
        return True

    if value is _MISSING:
        return False
    if isinstance(predicate, list):
        return any(_loose_equal(value, option) for option in predicate)
    return _loose_equal(value, predicate)


def _loose_equal(value: Any, expected: Any) -> bool:
    if isinstance(value, (str, int)) and isinstance(expected, (str, int)):
        return str(value) == str(expected)
    return value == expected


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


class InMemoryObjectStore:
    """Dict-backed ``ObjectStore``.

    Objects are copied on the way in and out, so callers never hold a live
    reference into the store.  ``transaction()`` snapshots the whole store
    and restores it if the block raises; the store lock is held for the
    duration of the block so concurrent units of work are serialized.
    """

    def __init__(self) -> None:
        self._objects: dict[str, StoredObject] = {}
        self._synchronizations: dict[str, SynchronizationRecord] = {}
        self._lock = threading.RLock()
        self._depth = 0

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[InMemoryObjectStore]:
        """Scoped unit of work: everything written inside is kept or none of it."""
        with self._lock:
            outermost = self._depth == 0
            snapshot = (
                self._snapshot() if outermost else None
            )
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if outermost:
                    self._restore(snapshot)
                    logger.debug("Transaction rolled back")
                raise
            else:
                self._depth -= 1
                if outermost:
                    try:
                        self._commit()
                    except BaseException:
                        self._restore(snapshot)
                        logger.error("Commit failed, transaction rolled back")
                        raise

    def _snapshot(self) -> tuple[dict, dict]:
        return (
            copy.deepcopy(self._objects),
            dict(self._synchronizations),
        )

    def _restore(self, snapshot: tuple[dict, dict] | None) -> None:
        if snapshot is not None:
            self._objects, self._synchronizations = snapshot

    def _commit(self) -> None:
        """Hook for durable stores; in-memory writes are already visible."""

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    def get(self, object_id: str) -> StoredObject | None:
        with self._lock:
            obj = self._objects.get(object_id)
            return copy.deepcopy(obj) if obj is not None else None

    def persist(self, obj: StoredObject) -> StoredObject:
        """Write *obj*; marks it persisted and stamps ``date_modified``."""
        with self.transaction():
            if obj.persisted or obj.id in self._objects:
                obj.date_modified = utcnow()
            obj.persisted = True
            self._objects[obj.id] = copy.deepcopy(obj)
        return obj

    def add(
        self,
        schema_ref: str,
        data: dict[str, Any],
        date_created: datetime | None = None,
    ) -> StoredObject:
        """Create and persist a new object."""
        obj = StoredObject(schema_ref=schema_ref, data=copy.deepcopy(data))
        if date_created is not None:
            obj.date_created = parse_timestamp(date_created)
        return self.persist(obj)

    def all_objects(self) -> list[StoredObject]:
        with self._lock:
            return [copy.deepcopy(o) for o in self._sorted_objects()]

    def _sorted_objects(self) -> list[StoredObject]:
        return sorted(
            self._objects.values(), key=lambda o: (o.date_created, o.id)
        )

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def project(self, obj: StoredObject) -> dict[str, Any]:
        """Build the searchable projection of *obj*."""
        sync_ids = [
            r.id
            for r in self._synchronizations.values()
            if r.object_id == obj.id
        ]
        document = copy.deepcopy(obj.data)
        document["_id"] = obj.id
        document["_self"] = {
            "id": obj.id,
            "schema": {"ref": obj.schema_ref},
            "dateCreated": format_timestamp(obj.date_created),
            "dateModified": format_timestamp(obj.date_modified)
            if obj.date_modified
            else None,
            "synchronizations": sync_ids or None,
        }
        return document

    def search(
        self,
        filters: dict[str, Any],
        schema_refs: list[str] | None = None,
    ) -> dict[str, Any]:
        """Return ``{"results": [...projections], "total": n}``."""
        with self._lock:
            results = []
            for obj in self._sorted_objects():
                if schema_refs and obj.schema_ref not in schema_refs:
                    continue
                document = self.project(obj)
                if all(
                    _matches(_lookup(document, path), predicate)
                    for path, predicate in filters.items()
                ):
                    results.append(document)
        return {"results": results, "total": len(results)}

    # ------------------------------------------------------------------
    # Synchronization records
    # ------------------------------------------------------------------

    def find_synchronization(
        self, object_id: str, source_id: str
    ) -> SynchronizationRecord | None:
        with self._lock:
            for record in self._synchronizations.values():
                if (
                    record.object_id == object_id
                    and record.source_id == source_id
                ):
                    return record
        return None

    def get_synchronization(
        self, record_id: str
    ) -> SynchronizationRecord | None:
        with self._lock:
            return self._synchronizations.get(record_id)

    def save_synchronization(
        self, record: SynchronizationRecord
    ) -> SynchronizationRecord:
        """Insert or update *record*.

        Raises:
            DuplicateSynchronizationError: If another record already links
                the same object and source.
        """
        with self.transaction():
            existing = self.find_synchronization(
                record.object_id, record.source_id
            )
            if existing is not None and existing.id != record.id:
                raise DuplicateSynchronizationError(
                    f"Object {record.object_id} already has synchronization "
                    f"{existing.id} for source '{record.source_id}'"
                )
            self._synchronizations[record.id] = record
        return record

    def synchronizations_for(
        self, object_id: str
    ) -> list[SynchronizationRecord]:
        with self._lock:
            return [
                r
                for r in self._synchronizations.values()
                if r.object_id == object_id
            ]


# ---------------------------------------------------------------------------
# JSON file store
# ---------------------------------------------------------------------------


class JsonObjectStore(InMemoryObjectStore):
    """``InMemoryObjectStore`` persisted to a JSON file.

    The file is rewritten atomically (temp file + ``os.replace()``) after
    every committed outermost transaction, so readers never see a
    partially written store.

    Args:
        path: Location of the JSON file; created on first commit.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self._path = Path(path)
        self._load()

    def _load(self) -> None:
        from .sync.models import SynchronizationRecord

        if not self._path.exists():
            return
        with open(self._path, encoding="utf-8") as fh:
            raw = json.load(fh)

        for object_id, item in raw.get("objects", {}).items():
            self._objects[object_id] = StoredObject(
                schema_ref=item["schema_ref"],
                data=item.get("data", {}),
                id=object_id,
                date_created=parse_timestamp(item["date_created"]),
                date_modified=parse_timestamp(item["date_modified"])
                if item.get("date_modified")
                else None,
                persisted=True,
            )
        for record_id, item in raw.get("synchronizations", {}).items():
            self._synchronizations[record_id] = (
                SynchronizationRecord.model_validate(item)
            )
        logger.debug(
            "Loaded %d objects and %d synchronizations from %s",
            len(self._objects),
            len(self._synchronizations),
            self._path,
        )

    def _commit(self) -> None:
        payload = {
            "version": 1,
            "objects": {
                obj.id: {
                    "schema_ref": obj.schema_ref,
                    "data": obj.data,
                    "date_created": obj.date_created.isoformat(),
                    "date_modified": obj.date_modified.isoformat()
                    if obj.date_modified
                    else None,
                }
                for obj in self._objects.values()
            },
            "synchronizations": {
                record.id: record.model_dump(mode="json")
                for record in self._synchronizations.values()
            },
        }

        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._path.parent), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2, default=str)
            os.replace(tmp_path, self._path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
