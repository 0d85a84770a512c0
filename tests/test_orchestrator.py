"""Tests for the report orchestrator."""

import asyncio
from datetime import datetime, timezone

import pytest

from conftest import build_commit, build_snapshot, settle
from dev_report.errors import ProviderFailure, ValidationError
from dev_report.events import EventType
from dev_report.models import ReportKind, SessionStatus, StatisticsSnapshot
from dev_report.orchestrator import ReportOrchestrator

NOW = datetime(2025, 1, 15, 18, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def orchestrator(app_config, stats_provider, generation_provider):
    return ReportOrchestrator(
        app_config,
        statistics_provider=stats_provider,
        generation_provider=generation_provider,
        quiet_interval=0.01,
        clock=lambda: NOW,
    )


def _record(orchestrator, event):
    seen = []
    orchestrator.on(event, seen.append)
    return seen


async def _debounced(orchestrator):
    await asyncio.sleep(0.05)
    await orchestrator.wait_for_refresh()


class TestInputs:
    def test_defaults(self, orchestrator):
        assert orchestrator.report_kind == ReportKind.daily
        assert orchestrator.word_target == 100
        assert orchestrator.selection.ids == []
        assert orchestrator.snapshot is None
        assert orchestrator.session is None

    def test_period_uses_clock(self, orchestrator):
        period = orchestrator.period()
        assert period.until == NOW
        assert period.since == datetime(2025, 1, 15, tzinfo=timezone.utc)

    def test_cross_day(self, orchestrator):
        orchestrator.set_cross_day(True)
        assert orchestrator.period().since == datetime(2025, 1, 14, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_select_prunes_unknown(self, orchestrator):
        orchestrator.select(["p2", "missing", "p1", "p2"])
        assert orchestrator.selection.ids == ["p2", "p1"]
        assert [p.name for p in orchestrator.selected_projects] == ["Beta", "Alpha"]
        assert orchestrator.project_label() == "Beta + Alpha"
        orchestrator._scheduler.cancel()

    @pytest.mark.asyncio
    async def test_report_kind_resets_word_target(self, orchestrator):
        orchestrator.select(["p1"])
        orchestrator.set_word_target(42)
        orchestrator.set_report_kind(ReportKind.quarterly)
        assert orchestrator.word_target == 800
        assert orchestrator.period().since == datetime(2025, 1, 1, tzinfo=timezone.utc)
        orchestrator._scheduler.cancel()

    def test_word_target_must_be_positive(self, orchestrator):
        with pytest.raises(ValidationError):
            orchestrator.set_word_target(0)

    def test_custom_range(self, orchestrator):
        since = datetime(2024, 12, 1, tzinfo=timezone.utc)
        until = datetime(2024, 12, 31, 23, 59, 59, tzinfo=timezone.utc)
        orchestrator.set_custom_range(since, until)
        assert orchestrator.period().since == since
        assert orchestrator.period_label() == "2024-12-01 00:00:00 to 2024-12-31 23:59:59"

        orchestrator.clear_custom_range()
        assert orchestrator.period_label().startswith("Daily report (")

    def test_inverted_custom_range_rejected(self, orchestrator):
        with pytest.raises(ValidationError):
            orchestrator.set_custom_range(
                datetime(2024, 12, 31, tzinfo=timezone.utc),
                datetime(2024, 12, 1, tzinfo=timezone.utc),
            )
        assert orchestrator.custom_range is None


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_requires_selection(self, orchestrator):
        with pytest.raises(ValidationError):
            await orchestrator.refresh()

    @pytest.mark.asyncio
    async def test_refresh_emits_snapshot(self, orchestrator, stats_provider):
        stats_provider.snapshots["/repos/alpha"] = build_snapshot([build_commit("a", 1)])
        updates = _record(orchestrator, EventType.snapshot_updated)
        empty = _record(orchestrator, EventType.no_results)
        orchestrator.select(["p1"])
        orchestrator._scheduler.cancel()

        result = await orchestrator.refresh()

        assert result.snapshot.total_commits == 1
        assert updates == [result.snapshot]
        assert empty == []
        assert stats_provider.calls[0]["author_filter"] == ["Alice"]

    @pytest.mark.asyncio
    async def test_zero_commits_reports_no_results(self, orchestrator, stats_provider, generation_provider):
        empty = _record(orchestrator, EventType.no_results)
        orchestrator.select(["p1"])
        orchestrator._scheduler.cancel()

        await orchestrator.refresh()

        assert len(empty) == 1
        with pytest.raises(ValidationError):
            await orchestrator.generate()
        assert generation_provider.streams == []

    @pytest.mark.asyncio
    async def test_selection_changes_are_debounced(self, orchestrator, stats_provider):
        updates = _record(orchestrator, EventType.snapshot_updated)

        orchestrator.select(["p1"])
        orchestrator.select(["p1", "p2"])
        orchestrator.set_cross_day(True)
        assert orchestrator.refresh_pending
        await _debounced(orchestrator)

        assert len(stats_provider.calls) == 2
        assert {c["repo_path"] for c in stats_provider.calls} == {"/repos/alpha", "/repos/beta"}
        assert len(updates) == 1

    @pytest.mark.asyncio
    async def test_repository_failures_published(self, orchestrator, stats_provider):
        stats_provider.snapshots["/repos/alpha"] = build_snapshot([build_commit("a", 1)])
        stats_provider.errors["/repos/beta"] = ProviderFailure("path does not exist")
        failed = _record(orchestrator, EventType.repository_failed)
        orchestrator.select(["p1", "p2"])
        orchestrator._scheduler.cancel()

        result = await orchestrator.refresh()

        assert result.partial
        assert [f.project_id for f in failed] == ["p2"]
        assert orchestrator.snapshot.total_commits == 1

    @pytest.mark.asyncio
    async def test_scheduled_failure_emits_aggregation_failed(self, orchestrator, stats_provider):
        stats_provider.errors["/repos/alpha"] = ProviderFailure("not a git repository")
        failed = _record(orchestrator, EventType.aggregation_failed)

        orchestrator.select(["p1"])
        await _debounced(orchestrator)

        assert len(failed) == 1
        assert isinstance(failed[0], ProviderFailure)
        assert orchestrator.snapshot is None

    @pytest.mark.asyncio
    async def test_empty_selection_clears_snapshot(self, orchestrator, stats_provider):
        stats_provider.snapshots["/repos/alpha"] = build_snapshot([build_commit("a", 1)])
        updates = _record(orchestrator, EventType.snapshot_updated)
        orchestrator.select(["p1"])
        orchestrator._scheduler.cancel()
        await orchestrator.refresh()

        orchestrator.select([])

        assert orchestrator.snapshot is None
        assert updates[-1] is None
        assert not orchestrator.refresh_pending

    @pytest.mark.asyncio
    async def test_set_projects_prunes_deleted(self, orchestrator, projects):
        orchestrator.select(["p1", "p2"])
        orchestrator.set_projects([projects[0], projects[2]])
        assert orchestrator.selection.ids == ["p1"]
        orchestrator._scheduler.cancel()

    @pytest.mark.asyncio
    async def test_stale_refresh_is_ignored(self, orchestrator, stats_provider):
        gate = asyncio.Event()
        stats_provider.gates["/repos/alpha"] = gate
        stats_provider.snapshots["/repos/alpha"] = build_snapshot([build_commit("old", 1)])
        stats_provider.snapshots["/repos/beta"] = build_snapshot([build_commit("new", 2)])
        updates = _record(orchestrator, EventType.snapshot_updated)

        orchestrator.select(["p1"])
        orchestrator._scheduler.cancel()
        slow = asyncio.create_task(orchestrator.refresh())
        await settle()
        orchestrator.select(["p2"])
        orchestrator._scheduler.cancel()
        await orchestrator.refresh()
        gate.set()

        assert await slow is None
        assert orchestrator.snapshot.sample_commits[0].hash == "new"
        assert len(updates) == 1


class TestGenerate:
    @pytest.mark.asyncio
    async def test_failed_refresh_does_not_reuse_previous_statistics(
        self, orchestrator, stats_provider, generation_provider
    ):
        stats_provider.snapshots["/repos/alpha"] = build_snapshot([build_commit("a", 1, message="alpha work")])
        stats_provider.errors["/repos/beta"] = ProviderFailure("boom")
        updates = _record(orchestrator, EventType.snapshot_updated)
        orchestrator.select(["p1"])
        orchestrator._scheduler.cancel()
        await orchestrator.refresh()

        orchestrator.select(["p2"])
        orchestrator._scheduler.cancel()
        with pytest.raises(ProviderFailure):
            await orchestrator.refresh()

        assert orchestrator.snapshot is None
        assert updates[-1] is None
        with pytest.raises(ValidationError):
            await orchestrator.generate()
        assert generation_provider.streams == []

    @pytest.mark.asyncio
    async def test_scheduled_failure_clears_panel(self, orchestrator, stats_provider):
        stats_provider.snapshots["/repos/alpha"] = build_snapshot([build_commit("a", 1)])
        stats_provider.errors["/repos/beta"] = ProviderFailure("boom")
        updates = _record(orchestrator, EventType.snapshot_updated)
        orchestrator.select(["p1"])
        await _debounced(orchestrator)

        orchestrator.select(["p2"])
        await _debounced(orchestrator)

        assert updates[0] is not None
        assert updates[-1] is None
        assert orchestrator.snapshot is None

    @pytest.mark.asyncio
    async def test_generate_waits_for_current_selection(
        self, orchestrator, stats_provider, generation_provider
    ):
        stats_provider.snapshots["/repos/alpha"] = build_snapshot([build_commit("a", 1)])
        orchestrator.select(["p1"])
        orchestrator._scheduler.cancel()
        await orchestrator.refresh()

        orchestrator.select(["p2"])
        assert orchestrator.refresh_pending
        with pytest.raises(ValidationError):
            await orchestrator.generate()
        assert generation_provider.streams == []
        orchestrator._scheduler.cancel()

    @pytest.mark.asyncio
    async def test_generate_requires_selection(self, orchestrator):
        with pytest.raises(ValidationError):
            await orchestrator.generate()

    @pytest.mark.asyncio
    async def test_generate_requires_snapshot(self, orchestrator, generation_provider):
        orchestrator.select(["p1"])
        orchestrator._scheduler.cancel()
        with pytest.raises(ValidationError):
            await orchestrator.generate()
        assert generation_provider.streams == []

    def test_build_prompt_requires_snapshot(self, orchestrator):
        with pytest.raises(ValidationError):
            orchestrator.build_prompt()

    @pytest.mark.asyncio
    async def test_prompt_labels_selected_projects(self, orchestrator, stats_provider):
        stats_provider.snapshots["/repos/alpha"] = build_snapshot([build_commit("a", 1, files=("api/x.go",))])
        stats_provider.snapshots["/repos/beta"] = build_snapshot([build_commit("b", 2, files=("ui/y.tsx",))])
        orchestrator.select(["p1", "p2"])
        orchestrator._scheduler.cancel()
        await orchestrator.refresh()

        prompt = orchestrator.build_prompt()

        assert "Project: Alpha + Beta" in prompt
        assert "Period: Daily report (2025-01-15 00:00:00 to 2025-01-15 18:00:00)" in prompt
        assert "Commits: 2" in prompt

    @pytest.mark.asyncio
    async def test_end_to_end(self, orchestrator, stats_provider, generation_provider):
        stats_provider.snapshots["/repos/alpha"] = build_snapshot(
            [build_commit("a", 1, files=("api/x.go",), message="add endpoint")]
        )
        terminal = _record(orchestrator, EventType.session_terminal)
        orchestrator.select(["p1"])
        await _debounced(orchestrator)

        session = await orchestrator.generate()
        await settle()
        stream = generation_provider.streams[0]
        stream.push("* Today's work\n")
        stream.push("1. Added the endpoint")
        stream.push(done=True)
        await orchestrator.wait_for_generation()

        assert session.status == SessionStatus.completed
        assert session.accumulated_text == "* Today's work\n1. Added the endpoint"
        assert "- add endpoint" in generation_provider.requests[0].prompt
        assert terminal[0].final_text == session.accumulated_text

    @pytest.mark.asyncio
    async def test_regenerate_replaces_session(self, orchestrator, stats_provider, generation_provider):
        stats_provider.snapshots["/repos/alpha"] = build_snapshot([build_commit("a", 1)])
        orchestrator.select(["p1"])
        orchestrator._scheduler.cancel()
        await orchestrator.refresh()

        first = await orchestrator.generate()
        second = await orchestrator.generate()
        await settle()

        assert first.abandoned
        assert orchestrator.session is second

        orchestrator.cancel_generation()
        assert orchestrator.session is None
        assert second.abandoned
        await settle()

    @pytest.mark.asyncio
    async def test_snapshot_without_commits_cannot_generate(self, orchestrator, generation_provider):
        orchestrator._aggregator._snapshot = StatisticsSnapshot()
        orchestrator.selection.ids.append("p1")
        with pytest.raises(ValidationError):
            await orchestrator.generate()
        assert generation_provider.streams == []


class TestClose:
    @pytest.mark.asyncio
    async def test_close_tears_down(self, orchestrator, stats_provider):
        stats_provider.snapshots["/repos/alpha"] = build_snapshot([build_commit("a", 1)])
        orchestrator.select(["p1"])
        orchestrator._scheduler.cancel()
        await orchestrator.refresh()
        session = await orchestrator.generate()
        orchestrator.select(["p1"])

        await orchestrator.close()

        assert session.abandoned
        assert not orchestrator.refresh_pending
        assert orchestrator.events.listener_count(EventType.snapshot_updated) == 0
