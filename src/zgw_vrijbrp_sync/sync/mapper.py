"""Config-driven field mapper.

Translates an input structure into the shape a target API expects using
a ``MappingConfig``.  Mapping resolution, per output path (dotted):

1. **Passthrough** -- if enabled, the output starts as a copy of the input.
2. **Input path** -- a string value is a dotted path into the input; a
   path that does not resolve leaves the output key absent.
3. **Constant** -- ``{"const": value}`` writes *value* as-is.
4. **Foreach** -- ``{"foreach": path, "mapping": {...}}`` applies the
   sub-mapping to each element of the list at *path* (elements are the
   sub-mapping's input; ``"."`` addresses the element itself).
5. **Unset** -- dotted paths listed in ``unset`` are removed last.

The mapper is pure: input is never mutated and undefined fields are
simply absent from the output.
"""

from __future__ import annotations

import copy
from typing import Any, Protocol

from zgw_vrijbrp_sync.config_schema import MappingConfig

_ABSENT = object()


class Mapper(Protocol):
    """Protocol for the mapping collaborator."""

    def map(
        self, definition: MappingConfig, data: dict[str, Any]
    ) -> dict[str, Any]:
        ...  # pragma: no cover


class FieldMapper:
    """Apply ``MappingConfig`` definitions to input structures."""

    def map(
        self, definition: MappingConfig, data: dict[str, Any]
    ) -> dict[str, Any]:
        """Map *data* according to *definition*.

        Args:
            definition: The mapping definition.
            data: Input structure.

        Returns:
            A new output structure.
        """
        output: dict[str, Any] = (
            copy.deepcopy(data) if definition.passthrough else {}
        )
        self._apply(definition.mapping, data, output)

        for path in definition.unset:
            self._unset(output, path)

        return output

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _apply(
        self,
        rules: dict[str, Any],
        data: Any,
        output: dict[str, Any],
    ) -> None:
        for out_path, rule in rules.items():
            value = self._evaluate(rule, data)
            if value is not _ABSENT:
                self._set(output, out_path, value)

    def _evaluate(self, rule: Any, data: Any) -> Any:
        if isinstance(rule, str):
            return self.get_path(data, rule)

        if isinstance(rule, dict) and "const" in rule:
            return copy.deepcopy(rule["const"])

        if isinstance(rule, dict) and "foreach" in rule:
            items = self.get_path(data, rule["foreach"])
            if items is _ABSENT or not isinstance(items, list):
                return _ABSENT
            sub_rules = rule.get("mapping", {})
            mapped = []
            for item in items:
                element: dict[str, Any] = {}
                self._apply(sub_rules, item, element)
                mapped.append(element)
            return mapped

        raise ValueError(f"Unsupported mapping rule: {rule!r}")

    @staticmethod
    def get_path(data: Any, path: str) -> Any:
        """Resolve a dotted *path* in *data*; returns a private sentinel
        when any segment is missing."""
        if path == ".":
            return copy.deepcopy(data)
        current = data
        for segment in path.split("."):
            if isinstance(current, dict) and segment in current:
                current = current[segment]
            elif (
                isinstance(current, list)
                and segment.isdigit()
                and int(segment) < len(current)
            ):
                current = current[int(segment)]
            else:
                return _ABSENT
        return copy.deepcopy(current)

    @staticmethod
    def _set(output: dict[str, Any], path: str, value: Any) -> None:
        *parents, leaf = path.split(".")
        current = output
        for segment in parents:
            nxt = current.get(segment)
            if not isinstance(nxt, dict):
                nxt = {}
                current[segment] = nxt
            current = nxt
        current[leaf] = value

    @staticmethod
    def _unset(output: dict[str, Any], path: str) -> None:
        *parents, leaf = path.split(".")
        current: Any = output
        for segment in parents:
            if not isinstance(current, dict) or segment not in current:
                return
            current = current[segment]
        if isinstance(current, dict):
            current.pop(leaf, None)
