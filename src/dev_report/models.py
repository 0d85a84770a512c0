"""Data models for dev-report."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


# ── Report kinds & periods ────────────────────────────────────────────────

class ReportKind(str, Enum):
    """Granularity of a report."""

    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"

    @property
    def label(self) -> str:
        return f"{self.value.capitalize()} report"


class ReportingPeriod(BaseModel):
    """Time window a report covers (second precision)."""

    since: datetime
    until: datetime

    @field_validator("since", "until")
    @classmethod
    def _truncate_to_seconds(cls, value: datetime) -> datetime:
        return value.replace(microsecond=0)

    @model_validator(mode="after")
    def _check_order(self) -> "ReportingPeriod":
        if self.since > self.until:
            raise ValueError("period start must not be after its end")
        return self


class RepositorySelection(BaseModel):
    """Ordered, duplicate-free set of selected project ids."""

    ids: list[str] = Field(default_factory=list)

    @field_validator("ids")
    @classmethod
    def _dedupe(cls, ids: list[str]) -> list[str]:
        return list(dict.fromkeys(ids))

    def pruned(self, known_ids: list[str]) -> "RepositorySelection":
        """Drop ids that are no longer registered."""
        known = set(known_ids)
        return RepositorySelection(ids=[i for i in self.ids if i in known])

    def __len__(self) -> int:
        return len(self.ids)


# ── Repository statistics ─────────────────────────────────────────────────

class FileStatus(str, Enum):
    """Change status of a file within a commit."""

    added = "A"
    deleted = "D"
    modified = "M"

    @classmethod
    def from_git(cls, letter: str) -> "FileStatus":
        """Map a git --name-status letter; renames, copies etc. count as modified."""
        try:
            return cls(letter[:1].upper())
        except ValueError:
            return cls.modified


class FileChange(BaseModel):
    """A file touched by a commit."""

    status: FileStatus = FileStatus.modified
    path: str


class CommitRecord(BaseModel):
    """A single non-merge commit."""

    hash: str
    author: str
    email: str = ""
    timestamp: datetime
    message: str
    files: list[FileChange] = Field(default_factory=list)

    @property
    def short_hash(self) -> str:
        return self.hash[:7]


class FileChangeSummary(BaseModel):
    """How often a path changed within the sampled commits."""

    path: str
    change_count: int = 0


class StatisticsSnapshot(BaseModel):
    """Aggregated statistics for one or more repositories over a period."""

    total_commits: int = 0
    total_files_changed: int = 0
    authors: set[str] = Field(default_factory=set)
    date_range: tuple[str, str] = ("", "")
    sample_commits: list[CommitRecord] = Field(default_factory=list)
    file_change_summary: list[FileChangeSummary] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.total_commits == 0


class RepositoryFailure(BaseModel):
    """A project whose statistics could not be fetched in a cycle."""

    project_id: str
    project_name: str = ""
    message: str


class AggregationResult(BaseModel):
    """Outcome of one accepted aggregation cycle."""

    epoch: int
    snapshot: StatisticsSnapshot
    failures: list[RepositoryFailure] = Field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.failures)


# ── Generation ────────────────────────────────────────────────────────────

class SessionStatus(str, Enum):
    """Lifecycle state of a generation session."""

    pending = "pending"
    streaming = "streaming"
    completed = "completed"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.completed, SessionStatus.failed)


class GenerationSession(BaseModel):
    """One streamed generation for a prompt."""

    id: int
    prompt: str
    accumulated_text: str = ""
    status: SessionStatus = SessionStatus.pending
    abandoned: bool = False  # torn down before reaching a terminal state


class ChunkKind(str, Enum):
    content = "content"
    done = "done"
    error = "error"


class StreamChunk(BaseModel):
    """One item pushed by the generation provider."""

    content: str = ""
    done: bool = False
    error: Optional[str] = None

    @property
    def kind(self) -> ChunkKind:
        if self.error:
            return ChunkKind.error
        if self.done:
            return ChunkKind.done
        return ChunkKind.content


class GenerationRequest(BaseModel):
    """Everything the generation provider needs to open a stream."""

    api_key: str
    base_url: str
    model: str
    prompt: str
    temperature: float = 0.7
    timeout_seconds: int = 30


class SessionUpdate(BaseModel):
    """Incremental update published while a session streams."""

    session_id: int
    status: SessionStatus
    accumulated_text: str


class SessionOutcome(BaseModel):
    """Terminal state of a session."""

    session_id: int
    status: SessionStatus
    final_text: str
    error_marker: Optional[str] = None


# ── Configuration ─────────────────────────────────────────────────────────

class SubmoduleConfig(BaseModel):
    """A submodule of a registered project."""

    path: str
    name: str = ""
    enabled: bool = False


class ProjectConfig(BaseModel):
    """A registered repository."""

    id: str
    name: str
    repo_path: str
    authors: list[str] = Field(default_factory=list)
    submodules: list[SubmoduleConfig] = Field(default_factory=list)

    @property
    def enabled_submodule_paths(self) -> list[str]:
        return [s.path for s in self.submodules if s.enabled]


class LlmConfig(BaseModel):
    """Connection parameters for the generation backend."""

    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-3.5-turbo"
    timeout: int = 30
    temperature: float = 0.7

    def missing_fields(self) -> list[str]:
        """Names of required parameters that are blank."""
        return [
            name
            for name in ("api_key", "base_url", "model")
            if not getattr(self, name).strip()
        ]

    def to_request(self, prompt: str) -> GenerationRequest:
        return GenerationRequest(
            api_key=self.api_key,
            base_url=self.base_url,
            model=self.model,
            prompt=prompt,
            temperature=self.temperature,
            timeout_seconds=self.timeout,
        )


class ReportDefaults(BaseModel):
    """Default word-count target per report kind."""

    daily: int = 100
    weekly: int = 300
    monthly: int = 500
    quarterly: int = 800
    yearly: int = 1000

    def word_target(self, kind: ReportKind) -> int:
        return getattr(self, kind.value)


class AppConfig(BaseModel):
    """Application configuration as read from disk."""

    reports: ReportDefaults = Field(default_factory=ReportDefaults)
    llm: LlmConfig = Field(default_factory=LlmConfig)
    projects: list[ProjectConfig] = Field(default_factory=list)

    def project_ids(self) -> list[str]:
        return [p.id for p in self.projects]

    def get_project(self, project_id: str) -> Optional[ProjectConfig]:
        return next((p for p in self.projects if p.id == project_id), None)
