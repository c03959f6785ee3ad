"""Tests for sync reporter formatting functions.

Covers:
- format_sync_report with various result combinations
- format_dry_run_preview formatting
- format_result_line progress lines
- report_to_json structure and completeness
- SyncReport filter properties
- ConsoleObserver output
"""

from __future__ import annotations

import io

from zgw_vrijbrp_sync.sync.models import (
    DocumentResult,
    SyncAction,
    SyncReport,
    SyncResult,
)
from zgw_vrijbrp_sync.sync.reporter import (
    ConsoleObserver,
    format_dry_run_preview,
    format_result_line,
    format_sync_report,
    report_to_json,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_report(
    results: list[SyncResult] | None = None,
    dry_run: bool = False,
    handler: str = "cases-to-vrijbrp",
    strategy: str = "push",
) -> SyncReport:
    """Build a SyncReport with sensible defaults."""
    results = results or []
    return SyncReport(
        handler_name=handler,
        strategy=strategy,
        dry_run=dry_run,
        candidates_found=len(results),
        results=results,
        started_at="2026-03-02T12:00:00+00:00",
        completed_at="2026-03-02T12:01:00+00:00",
    )


def _result(
    action: SyncAction,
    object_id: str = "obj-1",
    identifier: str | None = "ZAAK-1",
    success: bool = True,
    error: str | None = None,
    error_type: str | None = None,
    remote_ref: str | None = None,
    documents: list[DocumentResult] | None = None,
) -> SyncResult:
    return SyncResult(
        object_id=object_id,
        business_identifier=identifier,
        action=action,
        success=success,
        error=error,
        error_type=error_type,
        remote_ref=remote_ref,
        documents=documents or [],
    )


# ---------------------------------------------------------------------------
# format_sync_report
# ---------------------------------------------------------------------------


class TestFormatSyncReport:
    """Tests for format_sync_report()."""

    def test_header_contains_handler_and_strategy(self):
        text = format_sync_report(_make_report(handler="zaken"))
        assert "'zaken' (push)" in text

    def test_dry_run_indicator_in_header(self):
        assert "DRY RUN" in format_sync_report(_make_report(dry_run=True))

    def test_no_dry_run_indicator_when_false(self):
        assert "DRY RUN" not in format_sync_report(_make_report())

    def test_summary_line_counts(self):
        report = _make_report(
            [
                _result(SyncAction.PUSH, remote_ref="/api/requests/1"),
                _result(SyncAction.PUSH, object_id="obj-2", success=False, error="x"),
                _result(SyncAction.SKIP, object_id="obj-3"),
            ]
        )
        text = format_sync_report(report)
        assert "Processed 3 of 3 candidates: 0 dispatched, 1 pushed, 0 pulled, 1 errors" in text

    def test_pushed_section(self):
        text = format_sync_report(
            _make_report([_result(SyncAction.PUSH, remote_ref="/api/requests/1")])
        )
        assert "Pushed:" in text
        assert "obj-1 -> /api/requests/1" in text

    def test_pulled_section_marks_created(self):
        text = format_sync_report(
            _make_report(
                [_result(SyncAction.CREATE_LOCAL, remote_ref="/api/requests/7")],
                strategy="pull",
            )
        )
        assert "Pulled:" in text
        assert "/api/requests/7 -> obj-1 (created)" in text

    def test_dispatched_section(self):
        text = format_sync_report(_make_report([_result(SyncAction.DISPATCH)]))
        assert "Dispatched:" in text

    def test_errors_section(self):
        report = _make_report(
            [
                _result(
                    SyncAction.PUSH,
                    success=False,
                    error="HTTP 422",
                    error_type="remote_call_error",
                )
            ]
        )
        text = format_sync_report(report)
        assert "Errors:" in text
        assert "obj-1: [remote_call_error] HTTP 422" in text

    def test_collection_error_without_object(self):
        report = _make_report(
            [_result(SyncAction.PULL, object_id="", identifier=None, success=False, error="x")]
        )
        assert "(pass):" in format_sync_report(report)

    def test_document_errors_section(self):
        docs = [
            DocumentResult(index=0, success=True, remote_ref="/api/documents/1"),
            DocumentResult(index=1, success=False, error="unknown MIME type"),
        ]
        text = format_sync_report(_make_report([_result(SyncAction.PUSH, documents=docs)]))
        assert "Document errors:" in text
        assert "obj-1 #1: unknown MIME type" in text

    def test_skipped_shows_count_only(self):
        report = _make_report(
            [_result(SyncAction.SKIP, object_id=f"obj-{i}") for i in range(3)]
        )
        text = format_sync_report(report)
        assert "Skipped: 3 candidates" in text
        assert "obj-0" not in text

    def test_empty_report_concise(self):
        text = format_sync_report(_make_report())
        assert "Pushed:" not in text
        assert "Errors:" not in text

    def test_timestamps_in_output(self):
        text = format_sync_report(_make_report())
        assert "Started: 2026-03-02T12:00:00+00:00" in text
        assert "Completed: 2026-03-02T12:01:00+00:00" in text


# ---------------------------------------------------------------------------
# format_dry_run_preview
# ---------------------------------------------------------------------------


class TestFormatDryRunPreview:
    def test_header(self):
        text = format_dry_run_preview(_make_report(dry_run=True))
        assert text.startswith("DRY RUN -- No changes will be made")
        assert "Handler: cases-to-vrijbrp (push)" in text

    def test_groups_by_action(self):
        report = _make_report(
            [
                _result(SyncAction.PUSH, object_id="a"),
                _result(SyncAction.PUSH, object_id="b", identifier=None),
            ],
            dry_run=True,
        )
        text = format_dry_run_preview(report)
        assert "[PUSH]" in text
        assert "  a (ZAAK-1)" in text
        assert "  b" in text

    def test_create_local_label(self):
        report = _make_report([_result(SyncAction.CREATE_LOCAL)], dry_run=True)
        assert "[CREATE LOCAL]" in format_dry_run_preview(report)

    def test_remote_members_without_id(self):
        report = _make_report(
            [_result(SyncAction.PULL, object_id="")], dry_run=True
        )
        assert "(remote)" in format_dry_run_preview(report)

    def test_skip_count_shown(self):
        report = _make_report([_result(SyncAction.SKIP)], dry_run=True)
        text = format_dry_run_preview(report)
        assert "Skipped: 1 candidates" in text
        assert "No candidates to synchronize." in text

    def test_empty_dry_run(self):
        text = format_dry_run_preview(_make_report(dry_run=True))
        assert "No candidates to synchronize." in text


# ---------------------------------------------------------------------------
# format_result_line
# ---------------------------------------------------------------------------


class TestFormatResultLine:
    def test_success_with_reference(self):
        line = format_result_line(
            _result(SyncAction.PUSH, remote_ref="/api/requests/1")
        )
        assert line == "[PUSH] obj-1 (ZAAK-1): ok -> /api/requests/1"

    def test_failure(self):
        line = format_result_line(
            _result(SyncAction.PUSH, identifier=None, success=False, error="HTTP 500")
        )
        assert line == "[PUSH] obj-1: failed: HTTP 500"

    def test_skip_reason(self):
        line = format_result_line(_result(SyncAction.SKIP, error="pass cancelled"))
        assert line.endswith("skipped: pass cancelled")

    def test_failed_documents_counted(self):
        docs = [DocumentResult(index=0, success=False, error="x")]
        line = format_result_line(_result(SyncAction.PUSH, documents=docs))
        assert line.endswith("(1 document(s) failed)")


# ---------------------------------------------------------------------------
# report_to_json
# ---------------------------------------------------------------------------


class TestReportToJson:
    def test_basic_structure(self):
        data = report_to_json(_make_report())
        assert set(data) == {
            "handler_name",
            "strategy",
            "dry_run",
            "started_at",
            "completed_at",
            "counts",
            "results",
        }

    def test_counts_match(self):
        report = _make_report(
            [
                _result(SyncAction.PUSH),
                _result(SyncAction.PULL, object_id="b"),
                _result(SyncAction.SKIP, object_id="c"),
                _result(SyncAction.PUSH, object_id="d", success=False, error="x"),
            ]
        )
        counts = report_to_json(report)["counts"]
        assert counts == {
            "candidates": 4,
            "total": 4,
            "dispatched": 0,
            "pushed": 1,
            "pulled": 1,
            "skipped": 1,
            "errors": 1,
            "document_errors": 0,
        }

    def test_result_entries(self):
        docs = [DocumentResult(index=0, success=True, remote_ref="/api/documents/1")]
        report = _make_report(
            [
                _result(SyncAction.PUSH, remote_ref="/api/requests/1", documents=docs),
                _result(
                    SyncAction.PUSH,
                    object_id="b",
                    success=False,
                    error="x",
                    error_type="remote_call_error",
                ),
            ]
        )
        first, second = report_to_json(report)["results"]
        assert first["remote_ref"] == "/api/requests/1"
        assert first["documents"] == [
            {"index": 0, "remote_ref": "/api/documents/1", "success": True}
        ]
        assert "error" not in first
        assert second["error_type"] == "remote_call_error"

    def test_dry_run_flag(self):
        assert report_to_json(_make_report(dry_run=True))["dry_run"] is True


# ---------------------------------------------------------------------------
# SyncReport properties
# ---------------------------------------------------------------------------


class TestSyncReportProperties:
    def test_pulled_includes_created_local(self):
        report = _make_report(
            [_result(SyncAction.PULL), _result(SyncAction.CREATE_LOCAL, object_id="b")]
        )
        assert len(report.pulled) == 2

    def test_failed_results_are_not_pushed(self):
        report = _make_report([_result(SyncAction.PUSH, success=False)])
        assert report.pushed == []
        assert len(report.errors) == 1

    def test_summary_format(self):
        summary = _make_report([_result(SyncAction.DISPATCH)]).summary()
        assert "Dispatched:     1" in summary
        assert "Total:          1" in summary

    def test_summary_dry_run_label(self):
        assert "(dry run)" in _make_report(dry_run=True).summary()


class TestConsoleObserver:
    def test_writes_sections_and_lines(self):
        stream = io.StringIO()
        observer = ConsoleObserver(stream)
        observer.section("zaken")
        observer.writeln("Found 0 candidates to push.")
        assert stream.getvalue() == "\nzaken\n-----\nFound 0 candidates to push.\n"
