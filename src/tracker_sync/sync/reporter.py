"""Report formatting for jobs, conflicts, and queue statistics.

Provides human-readable and machine-readable output:

- ``format_job_report`` -- job summary with optional history.
- ``format_conflict`` -- one conflict with a local/remote diff.
- ``format_conflict_list`` -- compact listing of conflicts.
- ``format_queue_stats`` -- one-line queue summary.
- ``job_to_json`` / ``conflict_to_json`` -- structured dicts for MCP
  ``structuredContent`` output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from .merger import generate_diff

if TYPE_CHECKING:
    from .models import QueueStats, SyncConflict, SyncHistoryEntry, SyncJob


# ------------------------------------------------------------------
# Human-readable output
# ------------------------------------------------------------------


def format_job_report(
    job: SyncJob, history: Sequence[SyncHistoryEntry] | None = None
) -> str:
    """Format a job as human-readable text.

    Args:
        job: The job to describe.
        history: Optional audit entries, oldest first.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    lines.append(
        f"Job {job.id} ({job.operation_type.value}, {job.direction.value})"
    )
    lines.append(f"Status: {job.status.value} ({job.progress}%)")
    lines.append(
        f"Items: {job.processed_items} processed, "
        f"{job.failed_items} failed, {job.total_items} total"
    )
    if job.retry_count:
        lines.append(f"Retries: {job.retry_count}/{job.max_retries}")
    if job.created_at:
        lines.append(f"Created: {job.created_at.isoformat()}")
    if job.completed_at:
        lines.append(f"Finished: {job.completed_at.isoformat()}")
    if job.error:
        lines.append(f"Error: {job.error}")

    failed_ids = job.metadata.get("failed_ids") or []
    if failed_ids:
        lines.append("")
        lines.append("Failed items:")
        for item_id in failed_ids:
            lines.append(f"  {item_id}")

    if history:
        lines.append("")
        lines.append("History:")
        for entry in history:
            who = f" by {entry.performed_by}" if entry.performed_by else ""
            lines.append(
                f"  {entry.timestamp.isoformat()} {entry.action}{who}"
            )

    return "\n".join(lines)


def format_conflict(conflict: SyncConflict) -> str:
    """Format a single conflict for review, with a local/remote diff."""
    lines: list[str] = []
    lines.append(
        f"Conflict {conflict.id}: {conflict.field} "
        f"({conflict.conflict_type.value}, {conflict.status.value})"
    )
    lines.append(f"Pair: {conflict.local_id} <-> {conflict.remote_key}")
    lines.append(f"Base:   {conflict.base_value!r}")
    lines.append(f"Local:  {conflict.local_value!r}")
    lines.append(f"Remote: {conflict.remote_value!r}")

    # Multi-line text only; scalars are already readable above.
    local, remote = conflict.local_value, conflict.remote_value
    if isinstance(local, str) and isinstance(remote, str) and (
        "\n" in local or "\n" in remote
    ):
        diff_text = generate_diff(local, remote)
        if diff_text:
            lines.append("")
            lines.append(diff_text.rstrip())

    if conflict.resolution_strategy is not None:
        lines.append("")
        lines.append(
            f"Resolved with {conflict.resolution_strategy.value} "
            f"by {conflict.resolved_by}: {conflict.resolved_value!r}"
        )
    return "\n".join(lines)


def format_conflict_list(conflicts: Sequence[SyncConflict]) -> str:
    if not conflicts:
        return "No conflicts."
    lines = [f"{len(conflicts)} conflict(s):"]
    for c in conflicts:
        lines.append(
            f"  {c.id} {c.local_id} <-> {c.remote_key} "
            f"{c.field} [{c.conflict_type.value}] {c.status.value}"
        )
    return "\n".join(lines)


def format_queue_stats(stats: QueueStats) -> str:
    return (
        f"Jobs: {stats.total} total, {stats.pending} pending, "
        f"{stats.in_progress} in progress, {stats.completed} completed, "
        f"{stats.failed} failed"
    )


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def job_to_json(job: SyncJob) -> dict:
    """Convert a job to a JSON-safe dict."""
    return job.model_dump(mode="json")


def conflict_to_json(conflict: SyncConflict) -> dict:
    return conflict.model_dump(mode="json")
