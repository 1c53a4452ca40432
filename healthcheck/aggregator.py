from collections.abc import Iterable

from healthcheck.schemas import ReportRow, SessionSummary


SUMMARY_COLUMNS = ("WindowDays", "TotalSessions", "Successful", "Warnings", "Failed", "Running", "SuccessRate")

_RESULT_BUCKETS = {"success": "success", "warning": "warning", "failed": "failed"}


def summarize_sessions(rows: Iterable[ReportRow], window_days: int) -> SessionSummary:
    """Count session rows by result and running state.

    Result and state are reported independently by the platform, so an
    in-flight session with a warning lands in both the running and the
    warning bucket.
    """
    counts = {"success": 0, "warning": 0, "failed": 0}
    total = 0
    running = 0

    for row in rows:
        total += 1
        bucket = _RESULT_BUCKETS.get(str(row.get("Result", "")).strip().lower())
        if bucket is not None:
            counts[bucket] += 1
        if str(row.get("State", "")).strip().lower() == "working":
            running += 1

    success_rate = round(counts["success"] / total * 100, 2) if total else 0

    return SessionSummary(
        window_days=window_days,
        total=total,
        success=counts["success"],
        warning=counts["warning"],
        failed=counts["failed"],
        running=running,
        success_rate=success_rate,
    )


def summary_row(summary: SessionSummary) -> ReportRow:
    return ReportRow.from_pairs(
        zip(
            SUMMARY_COLUMNS,
            (
                summary.window_days,
                summary.total,
                summary.success,
                summary.warning,
                summary.failed,
                summary.running,
                summary.success_rate,
            ),
        )
    )
