"""Tests for the config-driven field mapper.

Covers:
- Dotted input paths, missing paths leave the output key absent
- Constants
- foreach sub-mappings over lists
- Passthrough and unset
- Input is never mutated
"""

from __future__ import annotations

import copy

import pytest

from zgw_vrijbrp_sync.config_schema import MappingConfig
from zgw_vrijbrp_sync.sync.mapper import FieldMapper

ZAAK = {
    "identificatie": "ZAAK-2026-0001",
    "omschrijving": "Geboorteaangifte",
    "embedded": {
        "zaaktype": {"identificatie": "vrijbrp-geboorte"},
        "zaakinformatieobjecten": [
            {"embedded": {"informatieobject": {"inhoud": "QUJD", "bestandsnaam": "a.pdf"}}},
            {"embedded": {"informatieobject": {"inhoud": "REVG"}}},
        ],
    },
}


def _mapping(rules: dict, **kwargs) -> MappingConfig:
    return MappingConfig(reference="test-mapping", mapping=rules, **kwargs)


class TestPaths:
    def test_flat_and_nested_paths(self):
        result = FieldMapper().map(
            _mapping(
                {
                    "caseNumber": "identificatie",
                    "type.code": "embedded.zaaktype.identificatie",
                }
            ),
            ZAAK,
        )
        assert result == {
            "caseNumber": "ZAAK-2026-0001",
            "type": {"code": "vrijbrp-geboorte"},
        }

    def test_missing_path_is_absent_not_error(self):
        result = FieldMapper().map(
            _mapping({"missing": "embedded.nothing.here", "caseNumber": "identificatie"}),
            ZAAK,
        )
        assert "missing" not in result
        assert result["caseNumber"] == "ZAAK-2026-0001"

    def test_list_index_path(self):
        result = FieldMapper().map(
            _mapping({"first": "embedded.zaakinformatieobjecten.0.embedded.informatieobject.bestandsnaam"}),
            ZAAK,
        )
        assert result == {"first": "a.pdf"}


class TestRules:
    def test_const(self):
        result = FieldMapper().map(_mapping({"source": {"const": "zgw"}}), ZAAK)
        assert result == {"source": "zgw"}

    def test_foreach_maps_each_element(self):
        result = FieldMapper().map(
            _mapping(
                {
                    "documents": {
                        "foreach": "embedded.zaakinformatieobjecten",
                        "mapping": {
                            "file": "embedded.informatieobject.inhoud",
                            "filename": "embedded.informatieobject.bestandsnaam",
                        },
                    }
                }
            ),
            ZAAK,
        )
        assert result["documents"] == [
            {"file": "QUJD", "filename": "a.pdf"},
            {"file": "REVG"},
        ]

    def test_foreach_over_missing_list_is_absent(self):
        result = FieldMapper().map(
            _mapping({"documents": {"foreach": "embedded.none", "mapping": {}}}),
            ZAAK,
        )
        assert result == {}

    def test_foreach_dot_addresses_element(self):
        result = FieldMapper().map(
            _mapping({"codes": {"foreach": "codes", "mapping": {"value": "."}}}),
            {"codes": ["a", "b"]},
        )
        assert result == {"codes": [{"value": "a"}, {"value": "b"}]}

    def test_unsupported_rule_raises(self):
        with pytest.raises(ValueError, match="Unsupported mapping rule"):
            FieldMapper().map(_mapping({"x": 42}), ZAAK)


class TestPassthroughAndUnset:
    def test_passthrough_copies_input(self):
        result = FieldMapper().map(
            _mapping({"caseNumber": "identificatie"}, passthrough=True),
            ZAAK,
        )
        assert result["omschrijving"] == "Geboorteaangifte"
        assert result["caseNumber"] == "ZAAK-2026-0001"

    def test_unset_removes_paths(self):
        result = FieldMapper().map(
            _mapping(
                {},
                passthrough=True,
                unset=["embedded.zaakinformatieobjecten", "omschrijving", "not.there"],
            ),
            ZAAK,
        )
        assert "omschrijving" not in result
        assert result["embedded"] == {"zaaktype": {"identificatie": "vrijbrp-geboorte"}}

    def test_input_is_not_mutated(self):
        original = copy.deepcopy(ZAAK)
        result = FieldMapper().map(
            _mapping({}, passthrough=True, unset=["embedded.zaaktype"]),
            ZAAK,
        )
        result["identificatie"] = "changed"
        assert ZAAK == original
