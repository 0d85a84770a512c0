"""Snapshot merging: fan-in of per-repository statistics."""

from collections import defaultdict

from dev_report.analysis.periods import format_timestamp
from dev_report.models import (
    CommitRecord,
    FileChangeSummary,
    ReportingPeriod,
    StatisticsSnapshot,
)

SAMPLE_COMMIT_LIMIT = 50
FILE_SUMMARY_LIMIT = 20


def newest_first(commits: list[CommitRecord], limit: int = SAMPLE_COMMIT_LIMIT) -> list[CommitRecord]:
    """Sort commits by timestamp descending and keep the first ``limit``."""
    return sorted(commits, key=lambda c: c.timestamp, reverse=True)[:limit]


def merge_file_summaries(
    summaries: list[list[FileChangeSummary]],
    limit: int = FILE_SUMMARY_LIMIT,
) -> list[FileChangeSummary]:
    counts: dict[str, int] = defaultdict(int)
    for summary in summaries:
        for entry in summary:
            counts[entry.path] += entry.change_count
    ranked = sorted(counts.items(), key=lambda x: (-x[1], x[0]))[:limit]
    return [FileChangeSummary(path=path, change_count=count) for path, count in ranked]


def merge_snapshots(
    snapshots: list[StatisticsSnapshot],
    period: ReportingPeriod,
) -> StatisticsSnapshot:
    """Merge per-repository snapshots into one.

    Totals are summed and authors unioned, so the result does not depend
    on the order repositories were fetched in. Sample commits are
    re-sorted newest first and capped at ``SAMPLE_COMMIT_LIMIT``.
    """
    authors: set[str] = set()
    samples: list[CommitRecord] = []
    for snap in snapshots:
        authors |= snap.authors
        samples.extend(snap.sample_commits)

    return StatisticsSnapshot(
        total_commits=sum(s.total_commits for s in snapshots),
        total_files_changed=sum(s.total_files_changed for s in snapshots),
        authors=authors,
        date_range=(format_timestamp(period.since), format_timestamp(period.until)),
        sample_commits=newest_first(samples),
        file_change_summary=merge_file_summaries([s.file_change_summary for s in snapshots]),
    )
