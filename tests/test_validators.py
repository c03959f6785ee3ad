"""Tests for input validation helpers."""

import pytest

from zgw_vrijbrp_sync.validators import (
    format_validation_error,
    validate_business_identifier,
    validate_endpoint,
    validate_reference,
)


def test_format_validation_error():
    assert format_validation_error("Endpoint", "cannot be empty") == "Endpoint cannot be empty"


@pytest.mark.parametrize(
    "reference",
    ["https://vrijbrp.nl/source/vrijbrp.dossiers.source.json", "local-source"],
)
def test_valid_references(reference):
    assert validate_reference(reference) == (True, "")


@pytest.mark.parametrize(
    "reference,reason",
    [(None, "cannot be empty"), ("   ", "cannot be empty"), ("a b", "whitespace")],
)
def test_invalid_references(reference, reason):
    is_valid, message = validate_reference(reference)
    assert is_valid is False
    assert reason in message


@pytest.mark.parametrize(
    "endpoint,reason",
    [("", "cannot be empty"), ("api/requests", "must start with '/'"), ("/api/../x", "'..'")],
)
def test_invalid_endpoints(endpoint, reason):
    is_valid, message = validate_endpoint(endpoint)
    assert is_valid is False
    assert reason in message


def test_valid_endpoint():
    assert validate_endpoint("/api/requests") == (True, "")


@pytest.mark.parametrize("value", ["ZAAK-1", 42, 0])
def test_valid_business_identifiers(value):
    assert validate_business_identifier(value)[0] is True


@pytest.mark.parametrize("value", [None, "", "  ", True, 1.5, {"a": 1}, ["ZAAK-1"]])
def test_invalid_business_identifiers(value):
    assert validate_business_identifier(value)[0] is False
