"""
Input validation functions for the synchronization engine.

Provides validation for resource references, endpoints and business
identifiers before they reach the Store or a remote source.
"""


# ---------------------------------------------------------------------------
# Error message formatting helpers
# ---------------------------------------------------------------------------


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Reference")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_reference(reference: str | None) -> tuple[bool, str]:
    """
    Validate a source, mapping or schema reference.

    Args:
        reference: The reference to validate

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules:
        - Cannot be empty or whitespace-only
        - Cannot contain whitespace
    """
    if not reference or not reference.strip():
        return (
            False,
            format_validation_error("Reference", "cannot be empty"),
        )

    if any(ch.isspace() for ch in reference):
        return (
            False,
            format_validation_error(
                "Reference", f"cannot contain whitespace: '{reference}'"
            ),
        )

    return (True, "")


def validate_endpoint(endpoint: str) -> tuple[bool, str]:
    """
    Validate a remote endpoint path.

    Validation rules:
        - Cannot be empty
        - Must start with '/'
        - Cannot contain '..' (path traversal protection)
    """
    if not endpoint:
        return (
            False,
            format_validation_error("Endpoint", "cannot be empty"),
        )

    if not endpoint.startswith("/"):
        return (
            False,
            format_validation_error(
                "Endpoint", f"must start with '/': '{endpoint}'"
            ),
        )

    if ".." in endpoint:
        return (
            False,
            format_validation_error("Endpoint", "cannot contain '..'"),
        )

    return (True, "")


def validate_business_identifier(value: object) -> tuple[bool, str]:
    """
    Validate a business identifier (natural key) value.

    Identifiers must be non-empty strings or integers; booleans and
    structured values cannot act as a natural key.
    """
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        return (
            False,
            format_validation_error(
                "Business identifier",
                f"must be a string or integer, got {type(value).__name__}",
            ),
        )

    if isinstance(value, str) and not value.strip():
        return (
            False,
            format_validation_error(
                "Business identifier", "cannot be empty"
            ),
        )

    return (True, "")
