"""Candidate discovery.

A pass selects objects that:

1. have no synchronization record yet (``_self.synchronizations IS NULL``),
2. are of the handler's schema and case type (explicit ``caseTypes`` list,
   or ``caseTypePrefix``),
3. were created before ``now + beforeTimeModifier``.

Time modifiers are relative duration expressions such as
``"-10 minutes"`` or ``"-1 hour -30 minutes"``.  An expression without
any sign (``"10 minutes"``) is an offset into the past.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import Any

from zgw_vrijbrp_sync.config_schema import HandlerConfig
from zgw_vrijbrp_sync.errors import ConfigurationError
from zgw_vrijbrp_sync.store import ObjectStore, format_timestamp, parse_timestamp
from zgw_vrijbrp_sync.sync.models import SyncCandidate

logger = logging.getLogger(__name__)

_TERM = re.compile(
    r"\s*([+-]?)\s*(\d+)\s*(seconds?|secs?|minutes?|mins?|hours?|days?|weeks?)\b\s*",
    re.IGNORECASE,
)

_UNITS = {
    "sec": "seconds",
    "min": "minutes",
    "hou": "hours",
    "day": "days",
    "wee": "weeks",
}


def parse_time_modifier(expression: str) -> timedelta:
    """Turn a relative duration expression into a signed ``timedelta``.

    Raises:
        ConfigurationError: The expression is empty or malformed.
    """
    if not expression or not expression.strip():
        raise ConfigurationError("beforeTimeModifier cannot be empty")

    total = timedelta()
    signed = False
    pos = 0
    while pos < len(expression):
        match = _TERM.match(expression, pos)
        if match is None:
            raise ConfigurationError(
                f"Invalid beforeTimeModifier '{expression}': "
                f"cannot parse '{expression[pos:].strip()}'"
            )
        sign, amount, unit = match.groups()
        signed = signed or bool(sign)
        delta = timedelta(**{_UNITS[unit[:3].lower()]: int(amount)})
        total += -delta if sign == "-" else delta
        pos = match.end()

    return total if signed else -total


def created_before(now: datetime, expression: str) -> datetime:
    """Cut-off timestamp for discovery."""
    return now + parse_time_modifier(expression)


def build_discovery_filter(
    handler: HandlerConfig, now: datetime
) -> dict[str, Any]:
    """Store filter selecting unsynchronized candidates for *handler*."""
    filters: dict[str, Any] = {"_self.synchronizations": "IS NULL"}

    if handler.case_types:
        filters[handler.case_type_field] = list(handler.case_types)
    elif handler.case_type_prefix:
        filters[handler.case_type_field] = {"like": handler.case_type_prefix}

    filters["_self.dateCreated"] = {
        "before": format_timestamp(
            created_before(now, handler.before_time_modifier)
        )
    }
    return filters


def lookup_path(document: Any, path: str) -> Any:
    """Follow a dotted *path* through nested dicts; ``None`` when missing."""
    current: Any = document
    for segment in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(segment)
    return current


def matches_case_type(handler: HandlerConfig, document: dict[str, Any]) -> bool:
    """Whether *document* satisfies the handler's case type restriction."""
    if not handler.case_types and not handler.case_type_prefix:
        return True
    case_type = lookup_path(document, handler.case_type_field)
    if not isinstance(case_type, str):
        return False
    if handler.case_types:
        return case_type in handler.case_types
    return case_type.startswith(handler.case_type_prefix)


def candidate_from_document(
    document: dict[str, Any], identifier_field: str
) -> SyncCandidate:
    """Build a ``SyncCandidate`` from a Store search projection."""
    meta = document.get("_self", {})
    identifier = lookup_path(document, identifier_field)
    created = meta.get("dateCreated")
    synchronizations = meta.get("synchronizations") or []
    return SyncCandidate(
        object_id=document["_id"],
        schema_ref=(meta.get("schema") or {}).get("ref", ""),
        business_identifier=str(identifier) if identifier is not None else None,
        created_at=parse_timestamp(created) if created else None,
        synchronization_ref=synchronizations[0] if synchronizations else None,
        payload=document,
    )


def discover(
    store: ObjectStore,
    handler: HandlerConfig,
    now: datetime,
    identifier_field: str = "identificatie",
) -> list[SyncCandidate]:
    """Query *store* for the candidates of one pass.

    The ``like`` predicate used for prefixes is a substring match, so
    results are narrowed to true prefix matches afterwards.
    """
    filters = build_discovery_filter(handler, now)
    found = store.search(filters, [handler.schema_ref])
    logger.debug(
        "Discovery filter %s matched %d objects", filters, found["total"]
    )

    return [
        candidate_from_document(document, identifier_field)
        for document in found["results"]
        if matches_case_type(handler, document)
    ]
