from __future__ import annotations

from typing import Any, Mapping

from .pipeline import PipelineResult, PipelineState

# How many failed post ids are listed before the report truncates.
_MAX_LISTED_FAILURES = 50


def build_run_report(result: PipelineResult) -> dict[str, Any]:
    counts = result.downloads.counts
    failures = result.downloads.failures

    details: dict[str, Any] = {
        "output_root": str(result.output_root),
        "total_pages": int(result.total_pages),
        "posts_fetched": len(result.metadata.posts),
        "posts_dropped_by_rating": int(result.metadata.dropped),
        "failed_pages": list(result.metadata.failed_pages),
        **counts,
    }

    if result.state is PipelineState.ABORTED:
        summary = result.message or f"Run aborted ({result.abort_reason})."
    else:
        summary = (
            f"Downloaded {counts['saved']} new file(s), {counts['skipped']} already present, "
            f"{counts['failed']} failed."
        )

    return {
        "status": result.state.value,
        "abort_reason": result.abort_reason,
        "summary": summary,
        "details": details,
        "failures": [
            {"post_id": o.post_id, "reason": o.reason}
            for o in failures[:_MAX_LISTED_FAILURES]
        ],
        "failures_truncated": len(failures) > _MAX_LISTED_FAILURES,
    }


def format_run_report(report: Mapping[str, Any]) -> str:
    status = str(report.get("status") or "").strip() or "unknown"
    summary = str(report.get("summary") or "").strip() or f"Run stopped ({status})."

    lines: list[str] = [summary]

    details = report.get("details")
    if isinstance(details, Mapping):
        pages = details.get("failed_pages")
        if isinstance(pages, list) and pages:
            lines.append(f"Pages that could not be fetched: {', '.join(str(p) for p in pages)}")

    failures = report.get("failures")
    if isinstance(failures, list) and failures:
        lines.append("Failures (post id: reason):")
        for f in failures:
            if not isinstance(f, Mapping):
                continue
            lines.append(f"- {f.get('post_id')}: {f.get('reason')}")
        if report.get("failures_truncated"):
            lines.append("- ...")

    return "\n".join(lines)
