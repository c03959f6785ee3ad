"""Tests for strategy selection and result helpers."""

from __future__ import annotations

import pytest

from zgw_vrijbrp_sync.config_schema import SyncStrategy
from zgw_vrijbrp_sync.errors import ConfigurationError, RemoteCallError
from zgw_vrijbrp_sync.sync.models import SyncAction, SyncCandidate
from zgw_vrijbrp_sync.sync.strategies import (
    DispatchStrategy,
    PullStrategy,
    PushStrategy,
    create_strategy,
    failed_result,
    skipped_result,
)

CANDIDATE = SyncCandidate(
    object_id="obj-1", schema_ref="zaak", business_identifier="ZAAK-1"
)


class TestCreateStrategy:
    @pytest.mark.parametrize(
        "value,cls,action",
        [
            ("dispatch", DispatchStrategy, SyncAction.DISPATCH),
            ("push", PushStrategy, SyncAction.PUSH),
            (SyncStrategy.PULL, PullStrategy, SyncAction.PULL),
        ],
    )
    def test_known_strategies(self, value, cls, action):
        strategy = create_strategy(value)
        assert isinstance(strategy, cls)
        assert strategy.action == action

    def test_unknown_strategy(self):
        with pytest.raises(ConfigurationError, match="Valid strategies"):
            create_strategy("mirror")


class TestResultHelpers:
    def test_failed_result_carries_error_type(self):
        exc = RemoteCallError("timeout")
        result = failed_result(CANDIDATE, exc, SyncAction.PUSH)
        assert result.success is False
        assert result.error == "timeout"
        assert result.error_type == "remote_call_error"
        assert result.business_identifier == "ZAAK-1"

    def test_failed_result_for_plain_exception(self):
        result = failed_result(CANDIDATE, ValueError("bad"), SyncAction.PULL)
        assert result.error_type == "server_error"

    def test_skipped_result_is_successful(self):
        result = skipped_result(CANDIDATE, "already synchronized")
        assert result.action == SyncAction.SKIP
        assert result.success is True
        assert result.error == "already synchronized"
