"""Streaming generation: one live LLM stream at a time."""

import asyncio
import logging
from typing import Any, Optional

import pydantic

from dev_report.errors import StreamError, ValidationError
from dev_report.events import EventEmitter, EventType
from dev_report.models import (
    ChunkKind,
    GenerationRequest,
    GenerationSession,
    LlmConfig,
    SessionOutcome,
    SessionStatus,
    SessionUpdate,
    StatisticsSnapshot,
    StreamChunk,
)
from dev_report.providers import GenerationProvider

logger = logging.getLogger(__name__)

ERROR_MARKER = "\n\n> Error: {message}"


def error_marker(message: str) -> str:
    return ERROR_MARKER.format(message=message)


def validate_generation_inputs(
    snapshot: Optional[StatisticsSnapshot], llm: LlmConfig
) -> None:
    """Reject a generate request before any I/O happens."""
    if snapshot is None:
        raise ValidationError("No statistics loaded yet")
    if snapshot.total_commits == 0:
        raise ValidationError("No commits in the selected period")
    missing = llm.missing_fields()
    if missing:
        raise ValidationError(
            f"Generation backend is not configured (missing: {', '.join(missing)})"
        )


class StreamingGenerationController:
    """Owns at most one active generation session.

    Starting a new session first tears down the active one. Chunks that
    arrive for a session that is no longer active are dropped.
    """

    def __init__(self, provider: GenerationProvider, emitter: Optional[EventEmitter] = None) -> None:
        self._provider = provider
        self._emitter = emitter or EventEmitter()
        self._next_id = 0
        self._active: Optional[GenerationSession] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> Optional[GenerationSession]:
        return self._active

    def _is_live(self, session: GenerationSession) -> bool:
        return self._active is session and not session.abandoned

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def start(
        self,
        snapshot: Optional[StatisticsSnapshot],
        prompt: str,
        llm: LlmConfig,
    ) -> GenerationSession:
        """Validate, tear down any running session, and open a new stream."""
        validate_generation_inputs(snapshot, llm)
        previous = self._task
        self.cancel()
        if previous is not None and not previous.done():
            # The old stream is closed before the next one opens.
            await asyncio.wait({previous})

        self._next_id += 1
        session = GenerationSession(id=self._next_id, prompt=prompt)
        self._active = session
        logger.info("Generation session %d accepted", session.id)

        session.status = SessionStatus.streaming
        self._task = asyncio.get_running_loop().create_task(
            self._consume(session, llm.to_request(prompt))
        )
        self._emitter.emit(EventType.session_started, self._update(session))
        return session

    def cancel(self) -> None:
        """Abandon the active session; later chunks for it are dropped."""
        session, task = self._active, self._task
        self._active = None
        self._task = None
        if session is not None and not session.status.is_terminal:
            session.abandoned = True
            logger.info("Generation session %d abandoned", session.id)
        if task is not None and not task.done():
            task.cancel()

    async def wait(self, session: Optional[GenerationSession] = None) -> Optional[GenerationSession]:
        """Wait until the active session (or ``session``) stops streaming."""
        task = self._task
        target = session or self._active
        if task is None or target is not self._active:
            return target
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
        return target

    # ── Chunk handling ────────────────────────────────────────────────────

    async def _consume(self, session: GenerationSession, request: GenerationRequest) -> None:
        stream: Any = None
        try:
            stream = self._provider.open_stream(request)
            async for raw in stream:
                if not self._is_live(session):
                    return
                if self._fold(session, self._coerce(raw)):
                    return
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            err = StreamError(str(exc) or exc.__class__.__name__)
            logger.warning("Generation session %d stream failed: %s", session.id, err)
            if self._is_live(session):
                self._fold(session, StreamChunk(done=True, error=str(err)))
            return
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except RuntimeError:
                    # Generator already running or closed elsewhere.
                    pass

        if self._is_live(session):
            self._fold(session, StreamChunk(done=True))

    @staticmethod
    def _coerce(raw: Any) -> StreamChunk:
        if isinstance(raw, StreamChunk):
            return raw
        try:
            return StreamChunk.model_validate(raw)
        except pydantic.ValidationError as exc:
            return StreamChunk(done=True, error=f"Malformed stream chunk: {exc.error_count()} error(s)")

    def _fold(self, session: GenerationSession, chunk: StreamChunk) -> bool:
        """Apply one chunk to ``session``; True when the session is terminal."""
        if not self._is_live(session):
            return True

        kind = chunk.kind
        if kind == ChunkKind.error:
            marker = error_marker(chunk.error or "")
            session.accumulated_text += marker
            session.status = SessionStatus.failed
            logger.warning("Generation session %d failed: %s", session.id, chunk.error)
            self._finish(session, marker)
            return True
        if kind == ChunkKind.done:
            session.status = SessionStatus.completed
            logger.info("Generation session %d completed", session.id)
            self._finish(session, None)
            return True

        session.accumulated_text += chunk.content
        self._emitter.emit(EventType.chunk_received, self._update(session))
        return False

    def _finish(self, session: GenerationSession, marker: Optional[str]) -> None:
        self._active = None
        self._task = None
        self._emitter.emit(
            EventType.session_terminal,
            SessionOutcome(
                session_id=session.id,
                status=session.status,
                final_text=session.accumulated_text,
                error_marker=marker,
            ),
        )

    @staticmethod
    def _update(session: GenerationSession) -> SessionUpdate:
        return SessionUpdate(
            session_id=session.id,
            status=session.status,
            accumulated_text=session.accumulated_text,
        )
