"""Statistics aggregation across selected repositories."""

import asyncio
import logging
from typing import Optional

from dev_report.analysis.merge import merge_snapshots
from dev_report.errors import ProviderFailure, ValidationError
from dev_report.models import (
    AggregationResult,
    ProjectConfig,
    ReportingPeriod,
    RepositoryFailure,
    StatisticsSnapshot,
)
from dev_report.providers import StatisticsProvider

logger = logging.getLogger(__name__)


class StatisticsAggregator:
    """Fetches a snapshot per project and merges them.

    Every cycle is tagged with an epoch from :meth:`begin_cycle`. A cycle
    that completes after a newer one has started is discarded and leaves
    the current snapshot untouched.
    """

    def __init__(self, provider: StatisticsProvider) -> None:
        self._provider = provider
        self._epoch = 0
        self._snapshot: Optional[StatisticsSnapshot] = None
        self._failures: list[RepositoryFailure] = []

    # ── State ─────────────────────────────────────────────────────────────

    @property
    def current_epoch(self) -> int:
        return self._epoch

    @property
    def snapshot(self) -> Optional[StatisticsSnapshot]:
        return self._snapshot

    @property
    def failures(self) -> list[RepositoryFailure]:
        return list(self._failures)

    def begin_cycle(self) -> int:
        self._epoch += 1
        logger.debug("Aggregation cycle %d started", self._epoch)
        return self._epoch

    def invalidate(self) -> None:
        """Drop the current snapshot and make any in-flight cycle stale."""
        self._epoch += 1
        self._snapshot = None
        self._failures = []

    def is_current(self, epoch: int) -> bool:
        return epoch == self._epoch

    # ── Fetching ──────────────────────────────────────────────────────────

    async def _fetch(
        self,
        project: ProjectConfig,
        period: ReportingPeriod,
        author_filter: Optional[list[str]],
    ) -> StatisticsSnapshot:
        authors = project.authors if author_filter is None else author_filter
        try:
            return await self._provider.fetch_stats(
                project.repo_path,
                period.since,
                period.until,
                authors,
                project.enabled_submodule_paths,
            )
        except ProviderFailure as exc:
            exc.project_id = exc.project_id or project.id
            exc.project_name = exc.project_name or project.name
            raise
        except Exception as exc:
            raise ProviderFailure(
                str(exc) or exc.__class__.__name__,
                project_id=project.id,
                project_name=project.name,
            ) from exc

    async def aggregate(
        self,
        projects: list[ProjectConfig],
        period: ReportingPeriod,
        epoch: int,
        author_filter: Optional[list[str]] = None,
    ) -> Optional[AggregationResult]:
        """Run one aggregation cycle.

        Returns ``None`` when the cycle went stale before completing.
        ``author_filter`` overrides each project's configured authors.
        """
        if not projects:
            raise ValidationError("No repository selected")

        failures: list[RepositoryFailure] = []

        if len(projects) == 1:
            try:
                snapshot = await self._fetch(projects[0], period, author_filter)
            except ProviderFailure:
                if not self.is_current(epoch):
                    logger.debug("Dropping failure from stale cycle %d", epoch)
                    return None
                # The previous snapshot belongs to other inputs.
                self._snapshot = None
                self._failures = []
                raise
        else:
            results = await asyncio.gather(
                *(self._fetch(p, period, author_filter) for p in projects),
                return_exceptions=True,
            )
            successes: list[StatisticsSnapshot] = []
            for project, result in zip(projects, results):
                if isinstance(result, ProviderFailure):
                    logger.warning(
                        "Statistics for %s failed: %s", project.name, result.message
                    )
                    failures.append(
                        RepositoryFailure(
                            project_id=project.id,
                            project_name=project.name,
                            message=result.message,
                        )
                    )
                elif isinstance(result, BaseException):
                    raise result
                else:
                    successes.append(result)
            snapshot = merge_snapshots(successes, period)

        if not self.is_current(epoch):
            logger.debug(
                "Discarding result of stale cycle %d (current %d)", epoch, self._epoch
            )
            return None

        self._snapshot = snapshot
        self._failures = failures
        return AggregationResult(epoch=epoch, snapshot=snapshot, failures=failures)
