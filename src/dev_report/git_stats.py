"""Commit statistics from local git repositories."""

import asyncio
import logging
from collections import Counter
from datetime import datetime
from pathlib import Path

import git  # GitPython

from dev_report.analysis.merge import FILE_SUMMARY_LIMIT, SAMPLE_COMMIT_LIMIT, newest_first
from dev_report.analysis.periods import format_timestamp
from dev_report.errors import ProviderFailure, ValidationError
from dev_report.models import (
    CommitRecord,
    FileChange,
    FileChangeSummary,
    FileStatus,
    StatisticsSnapshot,
)

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = "\x1e"
SUBMODULE_SAMPLE_LIMIT = 20
GIT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S %z"


def validate_repo_path(path: str) -> Path:
    p = Path(path)
    if not p.is_absolute():
        raise ValidationError(f"Repository path must be absolute: {path}")
    if not p.is_dir():
        raise ValidationError(f"Repository path does not exist or is not a directory: {path}")
    return p


def validate_authors(authors: list[str]) -> None:
    for author in authors:
        if author.startswith("-"):
            raise ValidationError(f"Invalid author filter: {author}")


def git_date(value: datetime) -> str:
    """Render a datetime the way ``git log --since`` reliably parses it."""
    if value.tzinfo is None:
        return value.strftime("%Y-%m-%d %H:%M:%S")
    return value.strftime(GIT_DATE_FORMAT)


def parse_git_log(raw: str) -> list[CommitRecord]:
    """Parse ``git log --name-status`` output using the record separator format."""
    commits: list[CommitRecord] = []
    current: CommitRecord | None = None

    for line in raw.splitlines():
        line = line.strip()
        if not line:
            continue

        if FIELD_SEPARATOR in line:
            if current is not None:
                commits.append(current)
                current = None
            parts = line.split(FIELD_SEPARATOR, 4)
            if len(parts) != 5:
                continue
            try:
                timestamp = datetime.strptime(parts[3], GIT_DATE_FORMAT)
            except ValueError:
                logger.debug("Skipping commit %s with unparseable date %r", parts[0], parts[3])
                continue
            current = CommitRecord(
                hash=parts[0],
                author=parts[1],
                email=parts[2],
                timestamp=timestamp,
                message=parts[4],
            )
        elif current is not None:
            fields = line.split("\t")
            if len(fields) >= 2:
                # Renames and copies list old and new path; keep the new one.
                current.files.append(
                    FileChange(status=FileStatus.from_git(fields[0]), path=fields[-1])
                )

    if current is not None:
        commits.append(current)
    return commits


class GitStatsProvider:
    """Computes statistics snapshots with GitPython."""

    def __init__(
        self,
        sample_limit: int = SAMPLE_COMMIT_LIMIT,
        submodule_sample_limit: int = SUBMODULE_SAMPLE_LIMIT,
    ) -> None:
        self.sample_limit = sample_limit
        self.submodule_sample_limit = submodule_sample_limit

    async def fetch_stats(
        self,
        repo_path: str,
        since: datetime,
        until: datetime,
        author_filter: list[str],
        enabled_submodule_paths: list[str],
    ) -> StatisticsSnapshot:
        return await asyncio.to_thread(
            self.collect_stats,
            repo_path,
            since,
            until,
            author_filter,
            enabled_submodule_paths,
        )

    # ── git plumbing ──────────────────────────────────────────────────────

    @staticmethod
    def _open(path: Path) -> git.Repo:
        try:
            return git.Repo(str(path))
        except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError) as exc:
            raise ProviderFailure(f"Not a git repository: {path}") from exc

    @staticmethod
    def _range_args(since: datetime, until: datetime, authors: list[str]) -> list[str]:
        args = [f"--since={git_date(since)}", f"--until={git_date(until)}", "--no-merges"]
        args.extend(f"--author={a}" for a in authors)
        return args

    def _count(self, repo: git.Repo, range_args: list[str]) -> tuple[int, set[str]]:
        """Number of commits and their authors within the range."""
        if not repo.head.is_valid():
            return 0, set()
        raw = repo.git.log(*range_args, f"--format=%H{FIELD_SEPARATOR}%an")
        count = 0
        authors: set[str] = set()
        for line in raw.splitlines():
            if not line.strip():
                continue
            count += 1
            _, _, author = line.partition(FIELD_SEPARATOR)
            if author:
                authors.add(author.strip())
        return count, authors

    def _samples(self, repo: git.Repo, range_args: list[str], limit: int) -> list[CommitRecord]:
        if not repo.head.is_valid():
            return []
        sep = FIELD_SEPARATOR
        raw = repo.git.log(
            *range_args,
            f"--pretty=format:%H{sep}%an{sep}%ae{sep}%ai{sep}%s",
            "--name-status",
            f"--max-count={limit}",
        )
        return parse_git_log(raw)

    # ── Stats ─────────────────────────────────────────────────────────────

    def collect_stats(
        self,
        repo_path: str,
        since: datetime,
        until: datetime,
        author_filter: list[str],
        enabled_submodule_paths: list[str],
    ) -> StatisticsSnapshot:
        """Blocking implementation of :meth:`fetch_stats`."""
        root = validate_repo_path(repo_path)
        validate_authors(author_filter)
        range_args = self._range_args(since, until, author_filter)

        with self._open(root) as repo:
            try:
                total, authors = self._count(repo, range_args)
                samples = self._samples(repo, range_args, self.sample_limit)
            except git.exc.GitCommandError as exc:
                raise ProviderFailure(f"git log failed in {root}: {str(exc.stderr or '').strip() or exc}") from exc

        for sub_path in enabled_submodule_paths:
            sub_root = Path(sub_path)
            if not sub_root.is_absolute():
                sub_root = root / sub_root
            try:
                with self._open(validate_repo_path(str(sub_root))) as sub_repo:
                    sub_total, sub_authors = self._count(sub_repo, range_args)
                    sub_samples = self._samples(sub_repo, range_args, self.submodule_sample_limit)
            except (ValidationError, ProviderFailure, git.exc.GitCommandError) as exc:
                logger.warning("Skipping submodule %s: %s", sub_root, exc)
                continue
            total += sub_total
            authors |= sub_authors
            samples.extend(sub_samples)

        samples = newest_first(samples, self.sample_limit)

        file_counts: Counter[str] = Counter()
        for commit in samples:
            file_counts.update(f.path for f in commit.files)
        summary = [
            FileChangeSummary(path=path, change_count=count)
            for path, count in file_counts.most_common(FILE_SUMMARY_LIMIT)
        ]

        if samples:
            date_range = (
                format_timestamp(min(c.timestamp for c in samples)),
                format_timestamp(max(c.timestamp for c in samples)),
            )
        else:
            date_range = (format_timestamp(since), format_timestamp(until))

        return StatisticsSnapshot(
            total_commits=total,
            total_files_changed=sum(len(c.files) for c in samples),
            authors=authors,
            date_range=date_range,
            sample_commits=samples,
            file_change_summary=summary,
        )
