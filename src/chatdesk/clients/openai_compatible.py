"""
OpenAI-compatible streaming client implementation.

This module provides the REST-streaming provider adapter used for DeepSeek,
Moonshot and OpenRouter: a single ``POST /chat/completions`` with
``stream: true`` whose ``text/event-stream`` body is decoded incrementally.
"""

import json
import logging
from typing import Any

import httpx

from ..core.models import MessageRole, StreamOptions, StreamResult, Turn
from .base import (
    AuthenticationError,
    BaseStreamingClient,
    ClientError,
    GenerationCancelled,
    PartialCallback,
    RateLimitError,
    RetryableError,
    TransportError,
)

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


class MalformedStreamFrame(ValueError):
    """A ``data:`` line whose payload is not (yet) a JSON object."""

    pass


class SSEDecoder:
    """
    Incremental decoder for newline-delimited ``data: {...}`` frames.

    Text is fed in arbitrary chunks; complete lines are decoded and the
    trailing partial line is buffered until the next chunk. Malformed frames
    are skipped. Decoding stops at the ``data: [DONE]`` sentinel.
    """

    def __init__(self):
        self._buffer = ""
        self.done = False

    def feed(self, chunk: str) -> list[dict[str, Any]]:
        """Decode every complete line available after appending ``chunk``."""
        if self.done:
            return []
        lines = (self._buffer + chunk).split("\n")
        self._buffer = lines.pop()
        return self._decode_lines(lines)

    def flush(self) -> list[dict[str, Any]]:
        """Decode whatever is left in the buffer at end of stream."""
        if self.done or not self._buffer:
            return []
        line, self._buffer = self._buffer, ""
        return self._decode_lines([line])

    def _decode_lines(self, lines: list[str]) -> list[dict[str, Any]]:
        events = []
        for line in lines:
            try:
                event = self._decode_line(line)
            except MalformedStreamFrame as e:
                logger.debug(f"Skipping malformed stream frame: {e}")
                continue
            if self.done:
                break
            if event is not None:
                events.append(event)
        return events

    def _decode_line(self, line: str) -> dict[str, Any] | None:
        stripped = line.strip()
        # blank separators, ": keep-alive" comments and other SSE fields
        if not stripped.startswith("data:"):
            return None

        data = stripped[len("data:"):].strip()
        if data == DONE_SENTINEL:
            self.done = True
            return None

        try:
            payload = json.loads(data)
        except json.JSONDecodeError as e:
            raise MalformedStreamFrame(f"{e.msg} in {data[:80]!r}") from e
        if not isinstance(payload, dict):
            raise MalformedStreamFrame(f"Expected a JSON object, got {data[:80]!r}")
        return payload


def extract_delta(event: dict[str, Any]) -> tuple[str, str]:
    """Return ``(content, reasoning_content)`` of ``choices[0].delta``."""
    choices = event.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return "", ""
    delta = choices[0].get("delta") or {}
    return delta.get("content") or "", delta.get("reasoning_content") or ""


class OpenAICompatibleClient(BaseStreamingClient):
    """
    Streaming client for OpenAI-style chat-completions endpoints.

    One instance serves one provider family (its base URL and API key).
    """

    def __init__(
        self,
        provider_name: str,
        base_url: str,
        api_key: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        extra_headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(provider_name, api_key, **kwargs)

        self.base_url = base_url.rstrip("/")
        self.extra_headers = extra_headers or {}
        self._http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        )

    @property
    def completions_url(self) -> str:
        return f"{self.base_url}/chat/completions"

    async def stream(
        self,
        turn: Turn,
        history: list[Turn],
        system_instruction: str | None,
        options: StreamOptions,
        on_partial: PartialCallback | None = None,
    ) -> StreamResult:
        """
        Stream a chat completion.

        Args:
            turn: New user turn; inline attachments are not sent to this family
            history: Ordered prior turns
            system_instruction: Sent as the leading ``system`` message
            options: Target model and cancel token
            on_partial: Invoked after each decoded increment

        Returns:
            Accumulated ``delta.content`` (and ``delta.reasoning_content``)
        """
        api_key = self.require_api_key(options.model)
        self.raise_if_cancelled(options)

        request_data = self._prepare_request(turn, history, system_instruction, options)

        try:
            return await self.retry_with_backoff(
                self._stream_completion, request_data, api_key, options, on_partial
            )
        except (ClientError, GenerationCancelled):
            raise
        except httpx.HTTPError as e:
            logger.error(f"{self.provider_name} stream failed: {e}")
            raise TransportError(
                f"Network error: {e}",
                provider=self.provider_name,
                model=options.model,
                details={"error_type": type(e).__name__},
            ) from e

    def _prepare_request(
        self,
        turn: Turn,
        history: list[Turn],
        system_instruction: str | None,
        options: StreamOptions,
    ) -> dict[str, Any]:
        """Prepare the chat-completions request body."""
        messages: list[dict[str, str]] = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})

        for past in history:
            content = past.text
            if content.strip():
                role = "assistant" if past.role == MessageRole.MODEL else "user"
                messages.append({"role": role, "content": content})

        if any(part.is_inline for part in turn.parts):
            logger.debug(
                f"{self.provider_name} does not accept inline attachments; sending text only"
            )
        messages.append({"role": "user", "content": turn.text or " "})

        return {"model": options.model, "messages": messages, "stream": True}

    def _headers(self, api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            **self.extra_headers,
        }

    async def _stream_completion(
        self,
        request_data: dict[str, Any],
        api_key: str,
        options: StreamOptions,
        on_partial: PartialCallback | None,
    ) -> StreamResult:
        """Open the stream and accumulate deltas until [DONE] or EOF."""
        text = ""
        thought = ""
        decoder = SSEDecoder()

        async with self._http_client.stream(
            "POST", self.completions_url, json=request_data, headers=self._headers(api_key)
        ) as response:
            if not response.is_success:
                await response.aread()
                self._handle_http_error(response, options.model)

            async for chunk in response.aiter_text():
                self.raise_if_cancelled(options)
                for event in decoder.feed(chunk):
                    text, thought = self._apply_event(event, text, thought, options, on_partial)
                if decoder.done:
                    break

            for event in decoder.flush():
                text, thought = self._apply_event(event, text, thought, options, on_partial)

        logger.debug(f"{self.provider_name} stream for {options.model} finished ({len(text)} chars)")
        return StreamResult(text=text, thought_process=thought or None, model=options.model)

    def _apply_event(
        self,
        event: dict[str, Any],
        text: str,
        thought: str,
        options: StreamOptions,
        on_partial: PartialCallback | None,
    ) -> tuple[str, str]:
        if "error" in event and not event.get("choices"):
            error = event["error"] if isinstance(event["error"], dict) else {}
            raise TransportError(
                f"Stream error: {error.get('message') or event['error']}",
                provider=self.provider_name,
                model=options.model,
                status_code=error.get("code") if isinstance(error.get("code"), int) else None,
                body=json.dumps(event),
            )

        content, reasoning = extract_delta(event)
        if not content and not reasoning:
            return text, thought

        text += content
        thought += reasoning
        if on_partial:
            on_partial(text, thought or None)
        return text, thought

    def _handle_http_error(self, response: httpx.Response, model: str) -> None:
        """Map a non-2xx response to the client error hierarchy."""
        body = response.text
        try:
            error_data = response.json()
            error_info = error_data.get("error", {}) if isinstance(error_data, dict) else {}
            if isinstance(error_info, str):
                error_message = error_info
            else:
                error_message = error_info.get("message") or f"HTTP {response.status_code}"
        except ValueError:
            error_message = f"HTTP {response.status_code}: {body[:200]}" if body else f"HTTP {response.status_code}"

        common = {
            "provider": self.provider_name,
            "model": model,
            "status_code": response.status_code,
            "body": body or None,
        }

        if response.status_code in (401, 403):
            raise AuthenticationError(f"Authentication failed: {error_message}", **common)
        elif response.status_code == 429:
            retry_after = None
            if "retry-after" in response.headers:
                try:
                    retry_after = int(response.headers["retry-after"])
                except ValueError:
                    pass
            raise RateLimitError(
                f"Rate limit exceeded: {error_message}", retry_after=retry_after, **common
            )
        elif response.status_code in (408, 502, 503, 504):
            raise RetryableError(f"Service temporarily unavailable: {error_message}", **common)
        else:
            raise TransportError(f"API error: {error_message}", **common)

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._http_client.aclose()
