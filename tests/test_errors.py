"""Tests for the error taxonomy and structured error responses."""

import pytest

from zgw_vrijbrp_sync.errors import (
    AmbiguousKeyError,
    ConfigurationError,
    CyclicReferenceError,
    DocumentProcessingError,
    DuplicateSynchronizationError,
    ObjectNotFoundError,
    RemoteCallError,
    SchemaResolutionError,
    SyncError,
    build_error_response,
    corrective_action,
    error_response_for,
)


@pytest.mark.parametrize(
    "exc,error_type",
    [
        (ConfigurationError("x"), "configuration_error"),
        (SchemaResolutionError("x"), "schema_resolution_error"),
        (CyclicReferenceError(["#/a", "#/b", "#/a"]), "cyclic_reference_error"),
        (AmbiguousKeyError("zaak", "ZAAK-1", ["a", "b"]), "ambiguous_key_error"),
        (RemoteCallError("x"), "remote_call_error"),
        (ObjectNotFoundError("x"), "not_found"),
        (DocumentProcessingError("x"), "document_processing_error"),
        (DuplicateSynchronizationError("x"), "duplicate_synchronization_error"),
    ],
)
def test_error_types(exc, error_type):
    assert isinstance(exc, SyncError)
    assert exc.error_type == error_type
    assert corrective_action(error_type) != corrective_action("unknown")


def test_cyclic_reference_message_shows_chain():
    exc = CyclicReferenceError(["#/a", "#/b", "#/a"])
    assert str(exc) == "Cyclic $ref detected: #/a -> #/b -> #/a"
    assert exc.ref == "#/a"
    assert isinstance(exc, SchemaResolutionError)


def test_ambiguous_key_message():
    exc = AmbiguousKeyError("zaak", "ZAAK-1", ["a", "b"])
    assert "2 objects" in str(exc)
    assert exc.object_ids == ["a", "b"]


def test_build_error_response():
    assert build_error_response("not_found", "gone", "nothing") == {
        "error": "not_found",
        "message": "gone",
        "action": "nothing",
    }


def test_corrective_action_default():
    assert corrective_action(None) == "Inspect the logs and retry the pass."


def test_error_response_for_remote_call_includes_body():
    response = error_response_for(
        RemoteCallError("HTTP 500", status_code=500, response_body="<html>")
    )
    assert response["error"] == "remote_call_error"
    assert response["response_body"] == "<html>"


def test_error_response_for_plain_exception():
    response = error_response_for(ValueError("bad"))
    assert response["error"] == "server_error"
    assert response["message"] == "bad"
    assert "response_body" not in response
