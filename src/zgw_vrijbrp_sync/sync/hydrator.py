"""Hydrate stored objects from mapped fields.

Hydration resolves (or allocates) the target object through its natural
key, overwrites each mapped field on it and persists the result in one
Store transaction.
"""

from __future__ import annotations

import logging
from typing import Any

from zgw_vrijbrp_sync.errors import ConfigurationError
from zgw_vrijbrp_sync.store import ObjectStore, StoredObject
from zgw_vrijbrp_sync.sync.resolver import NaturalKeyResolver
from zgw_vrijbrp_sync.validators import validate_business_identifier

logger = logging.getLogger(__name__)


class Hydrator:
    """Merge mapped fields into stored objects.

    Args:
        store: Object store written to.
        resolver: Natural-key resolver; defaults to a strict resolver on
            *store*.
    """

    def __init__(
        self,
        store: ObjectStore,
        resolver: NaturalKeyResolver | None = None,
    ) -> None:
        self.store = store
        self.resolver = resolver or NaturalKeyResolver(store)

    def hydrate(
        self,
        mapped_fields: dict[str, Any],
        schema_ref: str,
        identifier_field: str,
    ) -> StoredObject:
        """Find-or-create the object keyed by ``mapped_fields[identifier_field]``,
        merge *mapped_fields* into it and persist it.

        Fields are replaced whole; nested structures are not deep-merged.

        Raises:
            ConfigurationError: The mapped fields carry no usable identifier.
            AmbiguousKeyError: The identifier matches several objects.
        """
        identifier = mapped_fields.get(identifier_field)
        is_valid, message = validate_business_identifier(identifier)
        if not is_valid:
            raise ConfigurationError(
                f"Mapped fields for {schema_ref} lack identifier "
                f"'{identifier_field}': {message}"
            )

        with self.store.transaction():
            obj = self.resolver.resolve(
                schema_ref, identifier, identifier_field
            )
            created = not obj.persisted
            obj.hydrate(mapped_fields)
            self.store.persist(obj)

        logger.info(
            "%s %s %s=%s (%s)",
            "Created" if created else "Updated",
            schema_ref,
            identifier_field,
            identifier,
            obj.id,
        )
        return obj
