"""Report orchestration.

Owns the report inputs (selection, kind, period flags, word target),
drives debounced statistics refreshes, and hands prompts to the streaming
controller. Callers observe progress through :attr:`events`.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from dev_report.aggregator import StatisticsAggregator
from dev_report.analysis.periods import period_label, resolve_period
from dev_report.analysis.prompt import synthesize
from dev_report.errors import DevReportError, ProviderFailure, ValidationError
from dev_report.events import EventEmitter, EventType
from dev_report.models import (
    AggregationResult,
    AppConfig,
    GenerationSession,
    ProjectConfig,
    ReportingPeriod,
    ReportKind,
    RepositorySelection,
    StatisticsSnapshot,
)
from dev_report.providers import GenerationProvider, StatisticsProvider
from dev_report.scheduler import DEFAULT_QUIET_INTERVAL, RefreshScheduler, prune_selection
from dev_report.streaming import StreamingGenerationController

logger = logging.getLogger(__name__)


class ReportOrchestrator:
    """End-to-end report generation for one user session."""

    def __init__(
        self,
        config: AppConfig,
        statistics_provider: StatisticsProvider,
        generation_provider: GenerationProvider,
        quiet_interval: float = DEFAULT_QUIET_INTERVAL,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config
        self.events = EventEmitter()
        self._clock = clock
        self._statistics_provider = statistics_provider
        self._generation_provider = generation_provider
        self._aggregator = StatisticsAggregator(statistics_provider)
        self._controller = StreamingGenerationController(generation_provider, self.events)
        self._scheduler = RefreshScheduler(self._scheduled_refresh, quiet_interval)

        self.selection = RepositorySelection()
        self.report_kind = ReportKind.daily
        self.cross_day = False
        self.custom_range: Optional[tuple[datetime, datetime]] = None
        self._snapshot_ids: list[str] = []  # selection the current snapshot was built for
        self.word_target = config.reports.word_target(self.report_kind)

    # ── Observers ─────────────────────────────────────────────────────────

    def on(self, event: EventType, handler: Callable[[Any], None]) -> Callable[[], None]:
        return self.events.on(event, handler)

    # ── Read-only state ───────────────────────────────────────────────────

    @property
    def snapshot(self) -> Optional[StatisticsSnapshot]:
        return self._aggregator.snapshot

    @property
    def session(self) -> Optional[GenerationSession]:
        return self._controller.active

    @property
    def selected_projects(self) -> list[ProjectConfig]:
        by_id = {p.id: p for p in self.config.projects}
        return [by_id[i] for i in self.selection.ids if i in by_id]

    @property
    def refresh_pending(self) -> bool:
        return self._scheduler.pending

    def period(self) -> ReportingPeriod:
        now = self._clock() if self._clock else None
        return resolve_period(
            self.report_kind,
            cross_day=self.cross_day,
            custom_range=self.custom_range,
            now=now,
        )

    def project_label(self) -> str:
        return " + ".join(p.name for p in self.selected_projects)

    def period_label(self) -> str:
        return period_label(self.report_kind, self.period(), custom=self.custom_range is not None)

    # ── Inputs ────────────────────────────────────────────────────────────

    def select(self, ids: list[str]) -> None:
        """Replace the selection; unknown ids are pruned silently."""
        self.selection = prune_selection(
            RepositorySelection(ids=ids), self.config.project_ids()
        )
        self._request_refresh()

    def set_projects(self, projects: list[ProjectConfig]) -> None:
        """Update the known repositories, e.g. after one was deleted."""
        self.config = self.config.model_copy(update={"projects": projects})
        self.select(self.selection.ids)

    def set_report_kind(self, kind: ReportKind) -> None:
        self.report_kind = ReportKind(kind)
        self.word_target = self.config.reports.word_target(self.report_kind)
        self._request_refresh()

    def set_cross_day(self, cross_day: bool) -> None:
        self.cross_day = cross_day
        self._request_refresh()

    def set_custom_range(self, since: datetime, until: datetime) -> None:
        period = resolve_period(self.report_kind, custom_range=(since, until))
        self.custom_range = (period.since, period.until)
        self._request_refresh()

    def clear_custom_range(self) -> None:
        self.custom_range = None
        self._request_refresh()

    def set_word_target(self, words: int) -> None:
        if words <= 0:
            raise ValidationError("Word target must be positive")
        self.word_target = words

    def _request_refresh(self) -> None:
        if not self.selection.ids:
            self._scheduler.cancel()
            self._aggregator.invalidate()
            self.events.emit(EventType.snapshot_updated, None)
            return
        self._scheduler.trigger()

    # ── Statistics ────────────────────────────────────────────────────────

    async def refresh(self) -> Optional[AggregationResult]:
        """Run one aggregation cycle now.

        Returns ``None`` if a newer cycle started while this one ran.
        """
        projects = self.selected_projects
        if not projects:
            raise ValidationError("No repository selected")

        epoch = self._aggregator.begin_cycle()
        try:
            result = await self._aggregator.aggregate(projects, self.period(), epoch)
        except ProviderFailure:
            # The aggregator dropped the snapshot; listeners must too.
            self._snapshot_ids = []
            self.events.emit(EventType.snapshot_updated, None)
            raise
        if result is None:
            return None

        self._snapshot_ids = [p.id for p in projects]

        for failure in result.failures:
            self.events.emit(EventType.repository_failed, failure)
        self.events.emit(EventType.snapshot_updated, result.snapshot)
        # Judge emptiness on this cycle's own snapshot.
        if result.snapshot.is_empty:
            self.events.emit(EventType.no_results, result)
        return result

    async def _scheduled_refresh(self) -> None:
        try:
            await self.refresh()
        except DevReportError as exc:
            logger.warning("Scheduled refresh failed: %s", exc)
            self.events.emit(EventType.aggregation_failed, exc)

    async def wait_for_refresh(self) -> None:
        await self._scheduler.drain()

    # ── Generation ────────────────────────────────────────────────────────

    def build_prompt(self) -> str:
        snapshot = self.snapshot
        if snapshot is None:
            raise ValidationError("No statistics loaded yet")
        return synthesize(
            snapshot,
            self.report_kind,
            self.word_target,
            self.project_label(),
            self.period_label(),
        )

    async def generate(self) -> GenerationSession:
        """Start streaming a report for the current snapshot."""
        if not self.selection.ids:
            raise ValidationError("No repository selected")
        snapshot = self.snapshot
        if snapshot is None or snapshot.is_empty:
            raise ValidationError("No commits in the selected period")
        if self._snapshot_ids != self.selection.ids:
            raise ValidationError("Statistics for the current selection are not loaded yet")
        return await self._controller.start(snapshot, self.build_prompt(), self.config.llm)

    async def wait_for_generation(self) -> Optional[GenerationSession]:
        return await self._controller.wait()

    def cancel_generation(self) -> None:
        self._controller.cancel()

    async def close(self) -> None:
        """Tear down resources."""
        self._controller.cancel()
        await self._scheduler.close()
        for provider in (self._statistics_provider, self._generation_provider):
            close = getattr(provider, "close", None)
            if close is not None:
                await close()
        self.events.clear()
