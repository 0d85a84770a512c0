"""Prompt synthesis: turns a statistics snapshot into an LLM prompt."""

from collections import Counter
from pathlib import PurePosixPath

from pydantic import BaseModel, Field

from dev_report.models import CommitRecord, ReportKind, StatisticsSnapshot

TOP_MODULE_LIMIT = 5
COMMIT_EXCERPT_LIMIT = 20
ROOT_MODULE = "(root)"


class PromptConstraints(BaseModel):
    """Layout and writing rules requested for one report kind."""

    layout: str  # "bullets", "per_repository", "per_module"
    min_items: int = 0
    max_items: int = 0
    narrative: bool = True
    closing_summary: bool = False
    format_example: str = ""
    requirements: list[str] = Field(default_factory=list)


_DAILY = PromptConstraints(
    layout="bullets",
    min_items=3,
    max_items=6,
    narrative=False,
    format_example=(
        "* Today's work\n"
        "1. Finished the XXX feature\n"
        "2. Fixed the XXX bug\n"
        "3. Improved XXX performance"
    ),
    requirements=[
        "Write a bullet list of 3-6 items",
        "One sentence per item, results only",
        "No narrative, no process description, no closing summary",
    ],
)

_WEEKLY = PromptConstraints(
    layout="per_repository",
    closing_summary=True,
    format_example=(
        "* This week's work\n"
        "\n"
        "1. Project XX\n"
        "   1. Feature A: what was delivered and which problem it solved\n"
        "   2. Feature B: the effect and value of the change\n"
        "   3. Bug fixes: fixed XX, which improved XX\n"
        "\n"
        "2. Project YY\n"
        "   1. Built the XX module\n"
        "   2. Improved XX performance\n"
        "\n"
        "Key results this week\n"
        "Took XX from zero to a working first version covering XX; improved XX through XX."
    ),
    requirements=[
        "Group the work by repository",
        "If there is only one repository, group by module instead",
        "For each item say briefly what was done, what it solved and its effect",
        'A closing "Key results" paragraph is optional',
    ],
)

_LONG = PromptConstraints(
    layout="per_module",
    format_example=(
        "Grouped by module or project:\n"
        "\n"
        "1. Module XX\n"
        "   1. Delivered XX, achieving XX\n"
        "   2. Optimized XX, improving XX by XX%\n"
        "\n"
        "2. Module YY\n"
        "   1. Added the XX feature\n"
        "   2. Fixed the XX problem"
    ),
    requirements=[
        "Group the work by module or functional area",
        "Highlight the core work and its outcomes",
        "Prefer quantifiable results (number of features shipped, bugs fixed)",
    ],
)


def constraints_for(kind: ReportKind) -> PromptConstraints:
    """Constraint set for a report kind; independent of the word target."""
    if kind == ReportKind.daily:
        return _DAILY.model_copy(deep=True)
    if kind == ReportKind.weekly:
        return _WEEKLY.model_copy(deep=True)
    return _LONG.model_copy(deep=True)


def module_of(path: str) -> str:
    parts = PurePosixPath(path.replace("\\", "/")).parts
    return parts[0] if len(parts) > 1 else ROOT_MODULE


def module_histogram(commits: list[CommitRecord]) -> list[tuple[str, int]]:
    """Count commit mentions per top-level module, most mentioned first.

    A commit counts once for every distinct module it touches.
    """
    counts: Counter[str] = Counter()
    for commit in commits:
        counts.update(list(dict.fromkeys(module_of(f.path) for f in commit.files)))
    return counts.most_common()


def top_modules(commits: list[CommitRecord], limit: int = TOP_MODULE_LIMIT) -> list[str]:
    return [name for name, _ in module_histogram(commits)[:limit]]


def synthesize(
    snapshot: StatisticsSnapshot,
    kind: ReportKind,
    word_target: int,
    project_label: str,
    period_label: str,
) -> str:
    """Build the generation prompt for a snapshot."""
    constraints = constraints_for(kind)
    histogram = module_histogram(snapshot.sample_commits)[:TOP_MODULE_LIMIT]
    module_info = ", ".join(f"{name} ({count} commits)" for name, count in histogram) or "n/a"
    excerpt = "\n".join(
        f"- {c.message}" for c in snapshot.sample_commits[:COMMIT_EXCERPT_LIMIT]
    )
    requirements = "\n".join(f"- {r}" for r in constraints.requirements)

    return (
        f"You are a work report assistant. Write a {kind.label.lower()} "
        "based on the git commit history below.\n"
        "\n"
        f"Project: {project_label}\n"
        f"Period: {period_label}\n"
        f"Commits: {snapshot.total_commits}\n"
        f"Main modules: {module_info}\n"
        "\n"
        "Commit messages (sample):\n"
        f"{excerpt}\n"
        "\n"
        "Reference format:\n"
        f"{constraints.format_example}\n"
        "\n"
        "Requirements:\n"
        f"{requirements}\n"
        f"- About {word_target} words in total\n"
        "- Merge similar commits and extract the key information\n"
        "- Do not transcribe commits one by one; summarize them\n"
        "- If a feature took several commits, write it as a single item\n"
        "- Emphasize results, impact and value rather than process\n"
        "\n"
        f"Note: there are {snapshot.total_commits} commits in total; the list above is only a sample."
    )
