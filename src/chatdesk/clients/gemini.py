"""
Google Gemini client implementation.

This module provides the SDK-streaming provider adapter on top of the
``google-genai`` package. Each streamed chunk is folded into cumulative
text, with thought parts collected separately as the thought process.
"""

import base64
import binascii
import logging
from typing import Any

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..config.settings import GenerationConfig
from ..core.models import MessageRole, SessionMode, StreamOptions, StreamResult, Turn
from .base import (
    BaseStreamingClient,
    GenerationCancelled,
    PartialCallback,
    TransportError,
)

logger = logging.getLogger(__name__)


class GeminiClient(BaseStreamingClient):
    """
    Gemini client implementing the streaming contract with the native SDK.

    The SDK client is created lazily so that a missing key fails before
    anything else happens. ``execute_thinking_budget`` applies to execute-mode
    calls that carry no explicit budget.
    """

    def __init__(
        self,
        api_key: str | None = None,
        sdk_client: Any = None,
        execute_thinking_budget: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__("gemini", api_key, **kwargs)
        self._sdk_client = sdk_client
        if execute_thinking_budget is None:
            execute_thinking_budget = GenerationConfig().execute_thinking_budget
        self.execute_thinking_budget = execute_thinking_budget

    def _get_sdk_client(self, api_key: str) -> Any:
        if self._sdk_client is None:
            self._sdk_client = genai.Client(api_key=api_key)
        return self._sdk_client

    async def stream(
        self,
        turn: Turn,
        history: list[Turn],
        system_instruction: str | None,
        options: StreamOptions,
        on_partial: PartialCallback | None = None,
    ) -> StreamResult:
        """
        Stream a completion through ``client.aio.models.generate_content_stream``.

        Args:
            turn: New user turn including inline attachments
            history: Ordered prior turns
            system_instruction: Passed as the config's system instruction
            options: Model, reasoning budget, mode and cancel token
            on_partial: Invoked with cumulative text/thoughts after each chunk

        Returns:
            Final text and thought process
        """
        api_key = self.require_api_key(options.model)
        self.raise_if_cancelled(options)

        text = ""
        thought = ""

        try:
            client = self._get_sdk_client(api_key)
            contents = [self._to_content(t) for t in [*history, turn]]
            config = self._build_config(system_instruction, options)

            response_stream = await client.aio.models.generate_content_stream(
                model=options.model,
                contents=contents,
                config=config,
            )

            chunk_count = 0
            async for chunk in response_stream:
                self.raise_if_cancelled(options)

                text_delta, thought_delta = self._extract_chunk(chunk)
                if not text_delta and not thought_delta:
                    continue

                chunk_count += 1
                text += text_delta
                thought += thought_delta
                if on_partial:
                    on_partial(text, thought or None)

            logger.debug(f"Gemini stream for {options.model} finished after {chunk_count} chunks")

        except GenerationCancelled:
            raise
        except genai_errors.APIError as e:
            logger.error(f"Gemini API error: {e}")
            raise TransportError(
                f"API error: {e.message or e}",
                provider=self.provider_name,
                model=options.model,
                status_code=e.code,
                body=str(e.details) if e.details else None,
            ) from e
        except Exception as e:
            token = options.cancel_token
            if token is not None and token.is_cancelled:
                raise GenerationCancelled(self.provider_name, options.model) from e
            logger.error(f"Gemini streaming failed: {e}")
            raise TransportError(
                f"Unexpected error during streaming: {e}",
                provider=self.provider_name,
                model=options.model,
                details={"error_type": type(e).__name__},
            ) from e

        return StreamResult(text=text, thought_process=thought or None, model=options.model)

    def _build_config(
        self, system_instruction: str | None, options: StreamOptions
    ) -> types.GenerateContentConfig:
        budget = options.thinking_budget
        if budget is None and options.mode == SessionMode.EXECUTE:
            budget = self.execute_thinking_budget

        thinking_config = None
        if budget:
            thinking_config = types.ThinkingConfig(
                thinking_budget=budget, include_thoughts=True
            )

        return types.GenerateContentConfig(
            system_instruction=(system_instruction or "").strip() or None,
            thinking_config=thinking_config,
        )

    @staticmethod
    def _to_content(turn: Turn) -> types.Content:
        """Convert a provider-neutral turn into SDK content."""
        parts = []
        for part in turn.parts:
            if part.is_inline:
                try:
                    data = base64.b64decode(part.data, validate=False)
                except binascii.Error as e:
                    raise ValueError(f"Attachment is not valid base64: {e}") from e
                parts.append(
                    types.Part.from_bytes(
                        data=data, mime_type=part.mime_type or "application/octet-stream"
                    )
                )
            elif part.text:
                parts.append(types.Part.from_text(text=part.text))

        if not parts:
            parts.append(types.Part.from_text(text=" "))

        role = "model" if turn.role == MessageRole.MODEL else "user"
        return types.Content(role=role, parts=parts)

    @staticmethod
    def _extract_chunk(chunk: Any) -> tuple[str, str]:
        """Split a streamed chunk into ``(text, thought)`` deltas."""
        candidates = getattr(chunk, "candidates", None) or []
        if not candidates:
            return "", ""

        content = getattr(candidates[0], "content", None)
        parts = getattr(content, "parts", None) or []

        text = ""
        thought = ""
        for part in parts:
            part_text = getattr(part, "text", None)
            if not part_text:
                continue
            if getattr(part, "thought", None):
                thought += part_text
            else:
                text += part_text
        return text, thought
