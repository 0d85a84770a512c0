"""Main Textual TUI application for dev-report."""

from typing import Optional

from textual.app import App

from dev_report.config import load_config
from dev_report.git_stats import GitStatsProvider
from dev_report.llm import OpenAIStreamProvider
from dev_report.models import AppConfig
from dev_report.orchestrator import ReportOrchestrator
from dev_report.screens.report import ReportScreen


class DevReportApp(App):
    """TUI for generating work reports from git history."""

    TITLE = "Dev Report"
    SUB_TITLE = "Daily · Weekly · Monthly · Quarterly · Yearly"

    CSS = """
    Screen {
        background: $background;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
    ]

    def __init__(self, config: Optional[AppConfig] = None) -> None:
        super().__init__()
        self.app_config = config or load_config()
        self.orchestrator: Optional[ReportOrchestrator] = None

    def on_mount(self) -> None:
        self.orchestrator = ReportOrchestrator(
            self.app_config,
            statistics_provider=GitStatsProvider(),
            generation_provider=OpenAIStreamProvider(),
        )
        self.push_screen(ReportScreen(self.orchestrator))

    async def on_unmount(self) -> None:
        if self.orchestrator is not None:
            await self.orchestrator.close()
