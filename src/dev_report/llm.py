"""Streaming chat completions from an OpenAI-compatible endpoint."""

import json
from typing import AsyncIterator, Optional

import httpx

from dev_report.models import GenerationRequest, StreamChunk


class OpenAIStreamProvider:
    """Streams completion text over server-sent events."""

    def __init__(self) -> None:
        self._client: Optional[httpx.AsyncClient] = None

    # ── HTTP plumbing ─────────────────────────────────────────────────────

    async def _client_instance(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def completions_url(base_url: str) -> str:
        return f"{base_url.rstrip('/')}/chat/completions"

    @staticmethod
    def payload(request: GenerationRequest) -> dict:
        return {
            "model": request.model,
            "messages": [{"role": "user", "content": request.prompt}],
            "temperature": request.temperature,
            "stream": True,
        }

    # ── Streaming ─────────────────────────────────────────────────────────

    async def open_stream(self, request: GenerationRequest) -> AsyncIterator[StreamChunk]:
        """Yield content chunks, then exactly one ``done`` or ``error`` chunk."""
        client = await self._client_instance()
        headers = {
            "Authorization": f"Bearer {request.api_key}",
            "Content-Type": "application/json",
        }
        try:
            async with client.stream(
                "POST",
                self.completions_url(request.base_url),
                json=self.payload(request),
                headers=headers,
                timeout=float(request.timeout_seconds),
            ) as resp:
                if resp.is_error:
                    body = (await resp.aread()).decode(errors="replace")
                    yield StreamChunk(
                        done=True,
                        error=f"LLM API returned an error ({resp.status_code}): {body}",
                    )
                    return

                async for line in resp.aiter_lines():
                    chunk = parse_sse_line(line)
                    if chunk is None:
                        continue
                    yield chunk
                    if chunk.done:
                        return
        except httpx.HTTPError as exc:
            yield StreamChunk(done=True, error=f"Request failed: {exc}")
            return

        yield StreamChunk(done=True)


def parse_sse_line(line: str) -> Optional[StreamChunk]:
    """Turn one server-sent-events line into a chunk, or None to skip it."""
    line = line.strip()
    if not line.startswith("data:"):
        return None
    data = line[len("data:"):].strip()
    if data == "[DONE]":
        return StreamChunk(done=True)
    try:
        event = json.loads(data)
    except json.JSONDecodeError:
        return None
    try:
        content = event["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None
    if not content:
        return None
    return StreamChunk(content=content)
