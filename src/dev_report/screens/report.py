"""Report screen: project selection, statistics and streamed output."""

from textual import on
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.screen import Screen
from textual.widgets import (
    Button,
    Checkbox,
    Footer,
    Header,
    Input,
    Label,
    Markdown,
    Select,
    SelectionList,
    Static,
)

from dev_report.errors import DevReportError
from dev_report.events import EventType
from dev_report.models import (
    ReportKind,
    RepositoryFailure,
    SessionOutcome,
    SessionStatus,
    SessionUpdate,
    StatisticsSnapshot,
)
from dev_report.orchestrator import ReportOrchestrator


class ReportScreen(Screen):
    """Single-page report workflow."""

    BINDINGS = [
        ("escape", "cancel_generation", "Stop"),
        ("r", "refresh", "Refresh"),
    ]

    CSS = """
    #sidebar {
        width: 44;
        padding: 0 1;
        border-right: solid $primary;
    }
    .field-label {
        margin-top: 1;
        color: $text-muted;
    }
    #project-list {
        height: auto;
        max-height: 12;
    }
    #stats-panel {
        border: round $primary-lighten-2;
        padding: 0 1;
        margin-top: 1;
        height: auto;
    }
    #generate-btn {
        margin-top: 1;
        width: 100%;
    }
    #status-label {
        margin-top: 1;
        color: $warning;
    }
    #output {
        padding: 0 2;
    }
    """

    def __init__(self, orchestrator: ReportOrchestrator) -> None:
        super().__init__()
        self.orchestrator = orchestrator
        self._unsubscribers: list = []

    def compose(self) -> ComposeResult:
        config = self.orchestrator.config
        yield Header(show_clock=True)
        with Horizontal():
            with Vertical(id="sidebar"):
                yield Label("Projects:", classes="field-label")
                yield SelectionList[str](
                    *[(p.name, p.id, False) for p in config.projects],
                    id="project-list",
                )
                yield Label("Report kind:", classes="field-label")
                yield Select(
                    [(kind.label, kind.value) for kind in ReportKind],
                    value=self.orchestrator.report_kind.value,
                    allow_blank=False,
                    id="kind-select",
                )
                yield Checkbox("Count early-morning commits as previous day", id="cross-day")
                yield Label("Word target:", classes="field-label")
                yield Input(str(self.orchestrator.word_target), type="integer", id="word-input")
                yield Static("Select at least one project.", id="stats-panel")
                yield Button("▶  Generate report", id="generate-btn", variant="primary")
                yield Label("", id="status-label")
            with VerticalScroll(id="output"):
                yield Markdown("", id="report-md")
        yield Footer()

    # ── Orchestrator events ───────────────────────────────────────────────

    def on_mount(self) -> None:
        subscriptions = {
            EventType.snapshot_updated: self._on_snapshot,
            EventType.repository_failed: self._on_repository_failed,
            EventType.aggregation_failed: self._on_aggregation_failed,
            EventType.no_results: lambda _: self._set_status("No commits found for this period."),
            EventType.session_started: lambda _: self._set_status("Generating …"),
            EventType.chunk_received: self._on_chunk,
            EventType.session_terminal: self._on_terminal,
        }
        self._unsubscribers = [
            self.orchestrator.on(event, handler) for event, handler in subscriptions.items()
        ]
        if not self.orchestrator.config.projects:
            self._set_status("No projects configured. Add some to the config file first.")

    def on_unmount(self) -> None:
        # Leaving the view abandons any running generation.
        self.orchestrator.cancel_generation()
        for unsubscribe in self._unsubscribers:
            unsubscribe()

    def _set_status(self, message: str) -> None:
        self.query_one("#status-label", Label).update(message)

    def _on_snapshot(self, snapshot: StatisticsSnapshot | None) -> None:
        panel = self.query_one("#stats-panel", Static)
        if snapshot is None:
            panel.update("Select at least one project.")
            return
        lines = [
            f"Commits: {snapshot.total_commits}",
            f"Files changed: {snapshot.total_files_changed}",
            f"Authors: {len(snapshot.authors)}",
            f"Period: {snapshot.date_range[0]} → {snapshot.date_range[1]}",
        ]
        for commit in snapshot.sample_commits[:5]:
            lines.append(f"  · {commit.message[:36]}")
        panel.update("\n".join(lines))
        self._set_status("")

    def _on_repository_failed(self, failure: RepositoryFailure) -> None:
        self._set_status(f"⚠  {failure.project_name}: {failure.message}")

    def _on_aggregation_failed(self, exc: DevReportError) -> None:
        self._set_status(f"❌ {exc}")

    def _on_chunk(self, update: SessionUpdate) -> None:
        self.query_one("#report-md", Markdown).update(update.accumulated_text)

    def _on_terminal(self, outcome: SessionOutcome) -> None:
        self.query_one("#report-md", Markdown).update(outcome.final_text)
        if outcome.status == SessionStatus.failed:
            self._set_status("❌ Generation failed.")
        else:
            self._set_status("✔  Report ready.")

    # ── Inputs ────────────────────────────────────────────────────────────

    @on(SelectionList.SelectedChanged, "#project-list")
    def selection_changed(self, event: SelectionList.SelectedChanged) -> None:
        self.orchestrator.select(list(event.selection_list.selected))

    @on(Select.Changed, "#kind-select")
    def kind_changed(self, event: Select.Changed) -> None:
        if event.value is Select.BLANK:
            return
        self.orchestrator.set_report_kind(ReportKind(event.value))
        self.query_one("#word-input", Input).value = str(self.orchestrator.word_target)

    @on(Checkbox.Changed, "#cross-day")
    def cross_day_changed(self, event: Checkbox.Changed) -> None:
        self.orchestrator.set_cross_day(event.value)

    @on(Input.Changed, "#word-input")
    def word_target_changed(self, event: Input.Changed) -> None:
        try:
            self.orchestrator.set_word_target(int(event.value))
        except (ValueError, DevReportError):
            pass  # keep the previous target while the user is typing

    @on(Button.Pressed, "#generate-btn")
    async def generate(self) -> None:
        try:
            await self.orchestrator.generate()
        except DevReportError as exc:
            self._set_status(f"⚠  {exc}")
            return
        self.query_one("#report-md", Markdown).update("")

    async def action_refresh(self) -> None:
        try:
            await self.orchestrator.refresh()
        except DevReportError as exc:
            self._set_status(f"⚠  {exc}")

    def action_cancel_generation(self) -> None:
        if self.orchestrator.session is not None:
            self.orchestrator.cancel_generation()
            self._set_status("Generation stopped.")
