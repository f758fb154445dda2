"""Text and JSON renderings of sync passes and the sync log.

- ``format_sync_report`` -- post-pass summary printed by ``production-sync sync``.
- ``format_sync_log``    -- one line per sync log entry.
- ``report_to_json``     -- dict for ``/sync/run`` and the persisted status.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..models import SyncLogEntry
    from .models import SyncReport, SyncResult

LOG_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def _section(title: str, lines: list[str]) -> list[str]:
    """Titled, indented block followed by a blank line; nothing if empty."""
    if not lines:
        return []
    return [title, *(f"  {line}" for line in lines), ""]


def _peer_mapping(results: Sequence[SyncResult]) -> list[str]:
    return [f"#{r.local_id} -> peer #{r.peer_id}" for r in results]


def format_sync_report(report: SyncReport) -> str:
    """Render *report* for a terminal.

    A failed pass shows only its header and error.  Otherwise a counts
    line is followed by the sections that have entries.
    """
    status = "" if report.success else " -- FAILED"
    lines = [
        f"Sync report ({report.direction.value}, {report.trigger.value}){status}",
        f"Started: {report.started_at}",
    ]
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    if not report.success:
        lines.append(f"Error: {report.error}")
        return "\n".join(lines)

    lines += [
        f"Pushed {report.pushed} records "
        f"({len(report.created_remote)} created, {len(report.updated_remote)} updated); "
        f"pulled {report.added} added, {report.updated} updated, "
        f"{report.removed} removed; {len(report.errors)} errors",
        "",
    ]
    if report.critical:
        lines += [
            "CRITICAL: the peer returned an empty snapshot and local data was removed.",
            "",
        ]
    lines += _section("Created on peer:", _peer_mapping(report.created_remote))
    lines += _section("Updated on peer:", _peer_mapping(report.updated_remote))
    lines += _section("Errors:", [f"#{r.local_id}: {r.error}" for r in report.errors])
    return "\n".join(lines).rstrip()


def _log_line(entry: SyncLogEntry) -> str:
    target = "-" if entry.local_id is None else f"#{entry.local_id}"
    line = (
        f"{entry.created_at:{LOG_TIME_FORMAT}} {entry.severity.value.upper():8} "
        f"{entry.source.value}/{entry.direction.value} {entry.action.value} "
        f"{target} {entry.outcome.value}"
    )
    return f"{line}: {entry.error}" if entry.error else line


def format_sync_log(entries: Sequence[SyncLogEntry]) -> str:
    """One line per entry, in the order given."""
    if not entries:
        return "Sync log is empty."
    return "\n".join(_log_line(entry) for entry in entries)


def _result_to_json(result: SyncResult) -> dict[str, Any]:
    data: dict[str, Any] = {
        "local_id": result.local_id,
        "peer_id": result.peer_id,
        "action": result.action.value,
        "success": result.success,
    }
    if result.error:
        data["error"] = result.error
    return data


def report_to_json(report: SyncReport) -> dict[str, Any]:
    """JSON-ready dict: pass info, per-category counts and push results."""
    return {
        "direction": report.direction.value,
        "trigger": report.trigger.value,
        "success": report.success,
        "error": report.error,
        "critical": report.critical,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "pushed": report.pushed,
            "created_remote": len(report.created_remote),
            "updated_remote": len(report.updated_remote),
            "added": report.added,
            "updated": report.updated,
            "removed": report.removed,
            "errors": len(report.errors),
        },
        "results": [_result_to_json(r) for r in report.results],
    }
