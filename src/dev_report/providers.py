"""Interfaces of the collaborators the engine consumes."""

from datetime import datetime
from typing import Any, AsyncIterator, Protocol, Union

from dev_report.models import GenerationRequest, StatisticsSnapshot, StreamChunk


class StatisticsProvider(Protocol):
    """Computes commit statistics for one repository over a period."""

    async def fetch_stats(
        self,
        repo_path: str,
        since: datetime,
        until: datetime,
        author_filter: list[str],
        enabled_submodule_paths: list[str],
    ) -> StatisticsSnapshot: ...


class GenerationProvider(Protocol):
    """Streams generated text for a prompt.

    The stream is ordered and ends with a chunk that has ``done`` set or a
    non-empty ``error``. Items may be ``StreamChunk`` instances or plain
    mappings with the same keys.
    """

    def open_stream(
        self, request: GenerationRequest
    ) -> AsyncIterator[Union[StreamChunk, dict[str, Any]]]: ...
