"""Pytest configuration and fixtures."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from dev_report.models import (
    AppConfig,
    CommitRecord,
    FileChange,
    FileStatus,
    LlmConfig,
    ProjectConfig,
    StatisticsSnapshot,
)

BASE_TIME = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio backend for async tests."""
    return "asyncio"


# ── Builders ──────────────────────────────────────────────────────────────

def build_commit(
    sha: str,
    minutes: int = 0,
    files: tuple[str, ...] = (),
    author: str = "Alice",
    message: str = "",
) -> CommitRecord:
    return CommitRecord(
        hash=sha,
        author=author,
        email=f"{author.lower()}@test.com",
        timestamp=BASE_TIME + timedelta(minutes=minutes),
        message=message or f"commit {sha}",
        files=[FileChange(status=FileStatus.modified, path=p) for p in files],
    )


def build_snapshot(commits: list[CommitRecord], total: int | None = None) -> StatisticsSnapshot:
    return StatisticsSnapshot(
        total_commits=len(commits) if total is None else total,
        total_files_changed=sum(len(c.files) for c in commits),
        authors={c.author for c in commits},
        date_range=("2025-01-15 00:00:00", "2025-01-15 23:59:59"),
        sample_commits=commits,
    )


@pytest.fixture
def make_commit():
    return build_commit


@pytest.fixture
def make_snapshot():
    return build_snapshot


# ── Fake collaborators ────────────────────────────────────────────────────

class FakeStatsProvider:
    """Statistics provider backed by canned snapshots keyed by repo path."""

    def __init__(self) -> None:
        self.snapshots: dict[str, StatisticsSnapshot] = {}
        self.errors: dict[str, Exception] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: list[dict] = []

    async def fetch_stats(self, repo_path, since, until, author_filter, enabled_submodule_paths):
        self.calls.append(
            {
                "repo_path": repo_path,
                "since": since,
                "until": until,
                "author_filter": author_filter,
                "enabled_submodule_paths": enabled_submodule_paths,
            }
        )
        gate = self.gates.get(repo_path)
        if gate is not None:
            await gate.wait()
        if repo_path in self.errors:
            raise self.errors[repo_path]
        return self.snapshots.get(repo_path, StatisticsSnapshot())


_END = object()


class FakeStream:
    """A push stream the test feeds by hand."""

    def __init__(self) -> None:
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def push(self, content: str = "", done: bool = False, error: str | None = None) -> None:
        self.queue.put_nowait({"content": content, "done": done, "error": error})

    def push_raw(self, item) -> None:
        self.queue.put_nowait(item)

    def end(self) -> None:
        self.queue.put_nowait(_END)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.queue.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item

    async def aclose(self) -> None:
        self.closed = True


class FakeGenerationProvider:
    def __init__(self) -> None:
        self.streams: list[FakeStream] = []
        self.requests: list = []

    def open_stream(self, request):
        stream = FakeStream()
        self.streams.append(stream)
        self.requests.append(request)
        return stream


@pytest.fixture
def stats_provider():
    return FakeStatsProvider()


@pytest.fixture
def generation_provider():
    return FakeGenerationProvider()


@pytest.fixture
def llm_config():
    return LlmConfig(api_key="sk-test", base_url="https://llm.test/v1", model="test-model")


@pytest.fixture
def projects():
    return [
        ProjectConfig(id="p1", name="Alpha", repo_path="/repos/alpha", authors=["Alice"]),
        ProjectConfig(id="p2", name="Beta", repo_path="/repos/beta"),
        ProjectConfig(id="p3", name="Gamma", repo_path="/repos/gamma"),
    ]


@pytest.fixture
def app_config(projects, llm_config):
    return AppConfig(projects=projects, llm=llm_config)


async def settle(rounds: int = 10) -> None:
    """Let scheduled tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def flush():
    return settle
