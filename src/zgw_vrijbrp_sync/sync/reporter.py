"""Sync report formatting and progress reporting.

Provides human-readable and machine-readable output for sync passes:

- ``format_sync_report`` -- full post-pass summary.
- ``format_dry_run_preview`` -- dry-run preview grouped by action.
- ``format_result_line`` -- one line per candidate, for progress output.
- ``report_to_json`` -- structured dict for JSON output.
- ``ConsoleObserver`` -- optional progress sink passed into a pass.
"""

from __future__ import annotations

import sys
import threading
from collections import defaultdict
from typing import TYPE_CHECKING, Protocol, TextIO

from .models import SyncAction

if TYPE_CHECKING:
    from .models import SyncReport, SyncResult


# ------------------------------------------------------------------
# Progress observer
# ------------------------------------------------------------------


class Observer(Protocol):
    """Progress sink for a long-running pass."""

    def section(self, title: str) -> None:
        ...  # pragma: no cover

    def writeln(self, message: str) -> None:
        ...  # pragma: no cover


class ConsoleObserver:
    """Write progress to a text stream (stdout by default).

    Safe to share between the worker threads of one pass.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream or sys.stdout
        self._lock = threading.Lock()

    def section(self, title: str) -> None:
        with self._lock:
            self.stream.write(f"\n{title}\n{'-' * len(title)}\n")
            self.stream.flush()

    def writeln(self, message: str) -> None:
        with self._lock:
            self.stream.write(f"{message}\n")
            self.stream.flush()


def format_result_line(result: SyncResult) -> str:
    """``[ACTION] object (identifier): outcome`` for one result."""
    label = result.object_id or "(remote)"
    if result.business_identifier:
        label += f" ({result.business_identifier})"

    if not result.success:
        outcome = f"failed: {result.error}"
    elif result.action == SyncAction.SKIP:
        outcome = f"skipped: {result.error or 'no action'}"
    else:
        outcome = "ok"
        if result.remote_ref:
            outcome += f" -> {result.remote_ref}"

    failed_documents = sum(1 for d in result.documents if not d.success)
    if failed_documents:
        outcome += f" ({failed_documents} document(s) failed)"

    return f"[{result.action.value.upper()}] {label}: {outcome}"


# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a complete sync report as human-readable text.

    Sections are only included when they contain at least one result.
    Skipped candidates are summarised by count only.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = f"Sync report for '{report.handler_name}' ({report.strategy})"
    if report.dry_run:
        header += " (DRY RUN)"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    lines.append(
        f"Processed {len(report.results)} of {report.candidates_found} candidates: "
        f"{len(report.dispatched)} dispatched, {len(report.pushed)} pushed, "
        f"{len(report.pulled)} pulled, {len(report.errors)} errors"
    )
    lines.append("")

    if report.dispatched:
        lines.append("Dispatched:")
        for r in report.dispatched:
            lines.append(f"  {r.object_id}")
        lines.append("")

    if report.pushed:
        lines.append("Pushed:")
        for r in report.pushed:
            lines.append(f"  {r.object_id} -> {r.remote_ref or '(no reference)'}")
        lines.append("")

    if report.pulled:
        lines.append("Pulled:")
        for r in report.pulled:
            created = " (created)" if r.action == SyncAction.CREATE_LOCAL else ""
            lines.append(f"  {r.remote_ref or '(remote)'} -> {r.object_id}{created}")
        lines.append("")

    if report.errors:
        lines.append("Errors:")
        for r in report.errors:
            lines.append(
                f"  {r.object_id or r.business_identifier or '(pass)'}: "
                f"[{r.error_type}] {r.error}"
            )
        lines.append("")

    if report.document_errors:
        lines.append("Document errors:")
        for r in report.results:
            for d in r.documents:
                if not d.success:
                    lines.append(f"  {r.object_id} #{d.index}: {d.error}")
        lines.append("")

    if report.skipped:
        lines.append(f"Skipped: {len(report.skipped)} candidates")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Dry-run preview
# ------------------------------------------------------------------


def format_dry_run_preview(report: SyncReport) -> str:
    """Format a dry-run preview grouped by action type.

    Args:
        report: A dry-run sync report (``dry_run=True``).

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    lines.append("DRY RUN -- No changes will be made")
    lines.append(f"Handler: {report.handler_name} ({report.strategy})")
    lines.append("")

    groups: dict[SyncAction, list[SyncResult]] = defaultdict(list)
    for r in report.results:
        groups[r.action].append(r)

    display_order = [
        SyncAction.DISPATCH,
        SyncAction.PUSH,
        SyncAction.PULL,
        SyncAction.CREATE_LOCAL,
    ]

    for action in display_order:
        if action not in groups:
            continue
        label = action.value.upper().replace("_", " ")
        lines.append(f"[{label}]")
        for r in groups[action]:
            identifier = (
                f" ({r.business_identifier})" if r.business_identifier else ""
            )
            lines.append(f"  {r.object_id or '(remote)'}{identifier}")
        lines.append("")

    skip_count = len(groups.get(SyncAction.SKIP, []))
    if skip_count > 0:
        lines.append(f"Skipped: {skip_count} candidates")
        lines.append("")

    if not any(a != SyncAction.SKIP for a in groups):
        lines.append("No candidates to synchronize.")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Args:
        report: The sync report.

    Returns:
        Dict with handler info, counts, and per-result details.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "object_id": r.object_id,
            "business_identifier": r.business_identifier,
            "action": r.action.value,
            "success": r.success,
        }
        if r.remote_ref:
            entry["remote_ref"] = r.remote_ref
        if r.error:
            entry["error"] = r.error
            entry["error_type"] = r.error_type
        if r.documents:
            entry["documents"] = [
                d.model_dump(exclude_none=True) for d in r.documents
            ]
        results_list.append(entry)

    return {
        "handler_name": report.handler_name,
        "strategy": report.strategy,
        "dry_run": report.dry_run,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "candidates": report.candidates_found,
            "total": len(report.results),
            "dispatched": len(report.dispatched),
            "pushed": len(report.pushed),
            "pulled": len(report.pulled),
            "skipped": len(report.skipped),
            "errors": len(report.errors),
            "document_errors": len(report.document_errors),
        },
        "results": results_list,
    }
