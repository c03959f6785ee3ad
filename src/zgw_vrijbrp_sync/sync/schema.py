"""Flatten internal ``$ref`` pointers of a JSON Schema.

``flatten_json_schema()`` walks a schema and inlines every ``$ref`` of the
form ``#/path/to/node`` by looking the path up in the base document (the
top-level schema unless given explicitly).  The resolved node is itself
flattened against the same base, merged into the referring node (its
fields win on collision) and the ``$ref`` key is dropped.

Only same-document pointers are supported.  A pointer to a missing node
raises ``SchemaResolutionError``; a pointer that is reached again while it
is still being resolved raises ``CyclicReferenceError``.  Input is never
mutated.
"""

from __future__ import annotations

from typing import Any

from zgw_vrijbrp_sync.errors import CyclicReferenceError, SchemaResolutionError

REF_KEY = "$ref"


def flatten_json_schema(
    fragment: dict[str, Any],
    base: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Return a copy of *fragment* with all ``$ref`` pointers inlined.

    Args:
        fragment: The schema (or part of one) to flatten.
        base: Document pointers are resolved against. Defaults to
            *fragment*.

    Raises:
        SchemaResolutionError: A pointer does not resolve.
        CyclicReferenceError: A pointer chain revisits itself.
    """
    if base is None:
        base = fragment
    return _flatten_node(fragment, base, ())


def resolve_pointer(base: dict[str, Any], ref: str) -> Any:
    """Look up a ``#/a/b`` pointer in *base*.

    The first segment (``#``) is discarded; ``~1`` and ``~0`` escapes are
    decoded; list elements are addressed by index.
    """
    if not isinstance(ref, str) or not ref.startswith("#"):
        raise SchemaResolutionError(
            f"Only internal references are supported: {ref!r}", ref=str(ref)
        )

    segments = ref.split("/")[1:]
    node: Any = base
    for raw in segments:
        segment = raw.replace("~1", "/").replace("~0", "~")
        if isinstance(node, dict) and segment in node:
            node = node[segment]
        elif (
            isinstance(node, list)
            and segment.isdigit()
            and int(segment) < len(node)
        ):
            node = node[int(segment)]
        else:
            raise SchemaResolutionError(
                f"Reference {ref} does not resolve: no '{segment}' segment",
                ref=ref,
            )
    return node


def _flatten_value(value: Any, base: dict[str, Any], chain: tuple[str, ...]) -> Any:
    if isinstance(value, dict):
        return _flatten_node(value, base, chain)
    if isinstance(value, list):
        return [_flatten_value(item, base, chain) for item in value]
    return value


def _flatten_node(
    node: dict[str, Any], base: dict[str, Any], chain: tuple[str, ...]
) -> dict[str, Any]:
    result: dict[str, Any] = {}
    ref = None
    for key, value in node.items():
        if key == REF_KEY and isinstance(value, str):
            ref = value
            continue
        result[key] = _flatten_value(value, base, chain)

    if ref is None:
        return result

    # chain holds the pointers currently being resolved on this path
    if ref in chain:
        raise CyclicReferenceError([*chain, ref])

    target = resolve_pointer(base, ref)
    if not isinstance(target, dict):
        raise SchemaResolutionError(
            f"Reference {ref} points at a {type(target).__name__}, not an object",
            ref=ref,
        )

    result.update(_flatten_node(target, base, (*chain, ref)))
    return result
