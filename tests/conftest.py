"""Shared pytest fixtures for zgw-vrijbrp-sync tests."""

from __future__ import annotations

import base64
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from dotenv import load_dotenv

from zgw_vrijbrp_sync.bus import InMemoryBus
from zgw_vrijbrp_sync.config_schema import (
    HandlerConfig,
    MappingConfig,
    SchemaConfig,
    SourceConfig,
)
from zgw_vrijbrp_sync.resources import ResourceRegistry
from zgw_vrijbrp_sync.store import InMemoryObjectStore, StoredObject

load_dotenv()

ZAAK_SCHEMA = "https://vng.opencatalogi.nl/schemas/zrc.zaak.schema.json"
SOURCE_REF = "https://vrijbrp.nl/source/vrijbrp.dossiers.source.json"
MAPPING_REF = "https://vrijbrp.nl/mapping/vrijbrp.zaakToRequest.mapping.json"

FIXED_NOW = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n%%EOF\n"
PDF_B64 = base64.b64encode(PDF_BYTES).decode("ascii")
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24
PNG_B64 = base64.b64encode(PNG_BYTES).decode("ascii")


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live remote source",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live remote source"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


Route = Callable[[Dict[str, Any]], Any]


class FakeGatewayClient:
    """Minimal GatewayClient replacement for testing.

    Routes are keyed by ``(method, endpoint)``; a route is a callable
    receiving the call options and returning the decoded body (or
    raising).  Unrouted document uploads and request pushes get
    sequentially numbered ``@id`` references.
    """

    def __init__(self, routes: Optional[Dict[Tuple[str, str], Route]] = None) -> None:
        self.routes: Dict[Tuple[str, str], Route] = routes or {}
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []

    def request_json(
        self,
        source: SourceConfig,
        endpoint: str,
        method: str = "GET",
        **options: Any,
    ) -> Any:
        self.calls.append((method, endpoint, options))
        route = self.routes.get((method, endpoint))
        if route is not None:
            return route(options)
        if method == "POST" and endpoint == "/api/documents":
            return {"@id": f"/api/documents/{len(self.calls_to(endpoint))}"}
        if method == "POST" and endpoint == "/api/requests":
            return {
                "@id": f"/api/requests/{len(self.calls_to(endpoint))}",
                "status": "received",
            }
        return {}

    def calls_to(self, endpoint: str) -> List[Tuple[str, str, Dict[str, Any]]]:
        return [c for c in self.calls if c[1] == endpoint]


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_source(**overrides: Any) -> SourceConfig:
    defaults: Dict[str, Any] = {
        "reference": SOURCE_REF,
        "location": "https://vrijbrp.example.com",
    }
    defaults.update(overrides)
    return SourceConfig(**defaults)


def make_mapping(**overrides: Any) -> MappingConfig:
    defaults: Dict[str, Any] = {
        "reference": MAPPING_REF,
        "mapping": {
            "caseNumber": "identificatie",
            "caseType": "embedded.zaaktype.identificatie",
            "documents": {
                "foreach": "embedded.zaakinformatieobjecten",
                "mapping": {
                    "file": "embedded.informatieobject.inhoud",
                    "filename": "embedded.informatieobject.bestandsnaam",
                },
            },
        },
    }
    defaults.update(overrides)
    return MappingConfig(**defaults)


def make_handler(**overrides: Any) -> HandlerConfig:
    defaults: Dict[str, Any] = {
        "strategy": "push",
        "schema": ZAAK_SCHEMA,
        "source": SOURCE_REF,
        "mapping": MAPPING_REF,
        "caseTypePrefix": "vrijbrp-",
    }
    defaults.update(overrides)
    return HandlerConfig(**defaults)


def make_registry(**overrides: Any) -> ResourceRegistry:
    defaults: Dict[str, Any] = {
        "sources": [make_source()],
        "mappings": [make_mapping()],
        "schemas": [SchemaConfig(reference=ZAAK_SCHEMA)],
    }
    defaults.update(overrides)
    return ResourceRegistry(**defaults)


def add_case(
    store: InMemoryObjectStore,
    identificatie: str,
    case_type: str = "vrijbrp-geboorte",
    age: timedelta = timedelta(hours=1),
    documents: Optional[List[Dict[str, Any]]] = None,
    schema_ref: str = ZAAK_SCHEMA,
) -> StoredObject:
    """Store a case created *age* before ``FIXED_NOW``."""
    data: Dict[str, Any] = {
        "identificatie": identificatie,
        "embedded": {"zaaktype": {"identificatie": case_type}},
    }
    if documents is not None:
        data["embedded"]["zaakinformatieobjecten"] = [
            {"embedded": {"informatieobject": doc}} for doc in documents
        ]
    return store.add(schema_ref, data, date_created=FIXED_NOW - age)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store():
    return InMemoryObjectStore()


@pytest.fixture
def fake_client():
    return FakeGatewayClient()


@pytest.fixture
def bus():
    return InMemoryBus()


@pytest.fixture
def registry():
    return make_registry()


@pytest.fixture
def clock():
    """Clock frozen at ``FIXED_NOW``."""
    return lambda: FIXED_NOW


@pytest.fixture
def make_engine(store, fake_client, bus, registry, clock):
    """Factory building a SyncEngine over the shared fakes."""
    from zgw_vrijbrp_sync.sync.engine import SyncEngine

    def _make(handler: Optional[HandlerConfig] = None, **kwargs: Any) -> SyncEngine:
        options: Dict[str, Any] = {
            "store": store,
            "client": fake_client,
            "registry": registry,
            "bus": bus,
            "handler_name": "cases-to-vrijbrp",
            "handler": handler or make_handler(),
            "clock": clock,
        }
        options.update(kwargs)
        return SyncEngine(**options)

    return _make
