"""Natural-key resolution: map a business identifier to one stored object.

``NaturalKeyResolver.resolve()`` searches the Store for objects of a schema
whose identifier field equals the given business identifier:

- no match: a new, unpersisted ``StoredObject`` of that schema;
- one match: the stored object;
- several matches: ``AmbiguousKeyError`` (strict, the default), or the
  first match with a warning when ``strict=False``.

A match whose projection is stale (the object vanished between search and
load) is treated as no match.
"""

from __future__ import annotations

import logging

from zgw_vrijbrp_sync.errors import AmbiguousKeyError
from zgw_vrijbrp_sync.store import ObjectStore, StoredObject

logger = logging.getLogger(__name__)


class NaturalKeyResolver:
    """Find-or-allocate objects by business identifier.

    Args:
        store: The object store to search.
        identifier_field: Default field holding the business identifier.
        strict: Raise on ambiguous matches instead of taking the first.
    """

    def __init__(
        self,
        store: ObjectStore,
        identifier_field: str = "identificatie",
        strict: bool = True,
    ) -> None:
        self.store = store
        self.identifier_field = identifier_field
        self.strict = strict

    def resolve(
        self,
        schema_ref: str,
        business_identifier: str | int,
        identifier_field: str | None = None,
    ) -> StoredObject:
        """Return the object of *schema_ref* identified by *business_identifier*.

        Raises:
            AmbiguousKeyError: Several objects match and ``strict`` is set.
        """
        field_name = identifier_field or self.identifier_field
        found = self.store.search(
            {
                "_self.schema.ref": schema_ref,
                field_name: business_identifier,
            },
            [schema_ref],
        )

        if found["total"] == 0:
            logger.debug(
                "No %s with %s=%s, allocating new object",
                schema_ref,
                field_name,
                business_identifier,
            )
            return StoredObject(schema_ref=schema_ref)

        ids = [doc["_id"] for doc in found["results"]]
        if len(ids) > 1:
            if self.strict:
                raise AmbiguousKeyError(schema_ref, str(business_identifier), ids)
            logger.warning(
                "%d objects of %s share %s=%s, using %s",
                len(ids),
                schema_ref,
                field_name,
                business_identifier,
                ids[0],
            )

        obj = self.store.get(ids[0])
        if obj is None:
            logger.warning(
                "Search returned %s but the object no longer exists", ids[0]
            )
            return StoredObject(schema_ref=schema_ref)
        return obj
