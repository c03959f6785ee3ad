"""Exception taxonomy and structured error responses.

Every failure the engine reports derives from ``SyncError``.  Failures are
contained per document and per candidate; the orchestrator turns them into
failed ``SyncResult`` entries and, for the event-driven handler, into the
structured dicts built by ``build_error_response()`` so the invoking layer
gets a corrective action instead of a traceback.
"""

from __future__ import annotations

from typing import Any


class SyncError(Exception):
    """Base class for all synchronization engine errors."""

    error_type = "sync_error"


class ConfigurationError(SyncError):
    """A source, mapping, or schema reference could not be resolved,
    or a handler setting is malformed."""

    error_type = "configuration_error"


class SchemaResolutionError(SyncError):
    """A ``$ref`` pointer does not resolve inside its base document."""

    error_type = "schema_resolution_error"

    def __init__(self, message: str, ref: str | None = None):
        super().__init__(message)
        self.ref = ref


class CyclicReferenceError(SchemaResolutionError):
    """A ``$ref`` chain revisits a pointer that is still being resolved."""

    error_type = "cyclic_reference_error"

    def __init__(self, chain: list[str]):
        super().__init__(
            "Cyclic $ref detected: " + " -> ".join(chain),
            ref=chain[-1] if chain else None,
        )
        self.chain = chain


class AmbiguousKeyError(SyncError):
    """More than one stored object carries the same business identifier."""

    error_type = "ambiguous_key_error"

    def __init__(
        self, schema_ref: str, identifier: str, object_ids: list[str]
    ):
        super().__init__(
            f"{len(object_ids)} objects of schema '{schema_ref}' have "
            f"business identifier '{identifier}': {', '.join(object_ids)}"
        )
        self.schema_ref = schema_ref
        self.identifier = identifier
        self.object_ids = object_ids


class RemoteCallError(SyncError):
    """A call to a remote source failed (network, timeout, or HTTP error)."""

    error_type = "remote_call_error"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class ObjectNotFoundError(SyncError):
    """A candidate's object no longer exists in the Store."""

    error_type = "not_found"


class DocumentProcessingError(SyncError):
    """A document sub-resource could not be prepared for upload."""

    error_type = "document_processing_error"


class DuplicateSynchronizationError(SyncError):
    """A second synchronization record was created for one object/source pair."""

    error_type = "duplicate_synchronization_error"


# ---------------------------------------------------------------------------
# Structured responses
# ---------------------------------------------------------------------------


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> dict[str, Any]:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (e.g. ``configuration_error``).
        message: Human-readable error description.
        corrective_action: What an operator can do to resolve the error.

    Returns:
        Dict with ``error``, ``message`` and ``action`` keys.

    Examples:
        >>> build_error_response("configuration_error", "Unknown source 'x'", "Register the source.")
        {'error': 'configuration_error', 'message': "Unknown source 'x'", 'action': 'Register the source.'}
    """
    return {
        "error": error_type,
        "message": message,
        "action": corrective_action,
    }


_CORRECTIVE_ACTIONS: dict[str, str] = {
    "configuration_error": "Check the handler configuration and register the missing source, mapping or schema.",
    "schema_resolution_error": "Fix the $ref pointer so it names an existing node of the same document.",
    "cyclic_reference_error": "Break the $ref cycle in the schema definition.",
    "ambiguous_key_error": "Merge or remove the duplicate objects, then rerun the pass.",
    "remote_call_error": "The candidate stays unsynchronized and is retried on the next pass.",
    "document_processing_error": "Provide a filename or a recognisable file for the document.",
    "duplicate_synchronization_error": "Reuse the existing synchronization record for this object.",
    "invalid_event": "Publish events as {'body': {'_id': ...}}.",
    "not_found": "The object was removed from the store; no action is needed.",
    "invalid_case_type": "Only objects matching the handler's case types are synchronized.",
    "skipped": "The object is picked up again by the next pass.",
}


def corrective_action(error_type: str | None) -> str:
    """Operator guidance for *error_type*."""
    return _CORRECTIVE_ACTIONS.get(
        error_type or "", "Inspect the logs and retry the pass."
    )


def error_response_for(exc: Exception) -> dict[str, Any]:
    """Translate an exception into a structured error response."""
    error_type = getattr(exc, "error_type", "server_error")
    response = build_error_response(
        error_type, str(exc), corrective_action(error_type)
    )
    if isinstance(exc, RemoteCallError) and exc.response_body:
        response["response_body"] = exc.response_body
    return response
