"""
Abstract base client interface for streaming model providers.

This module defines the contract every provider adapter implements (one
wire protocol per model family behind a uniform streaming completion) and
the error taxonomy the conversation dispatcher relies on to tell failures
apart from user-initiated cancellation.
"""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from ..core.models import StreamOptions, StreamResult, Turn

logger = logging.getLogger(__name__)

PartialCallback = Callable[[str, str | None], None]
"""Receives the cumulative text and the cumulative thought process."""


class ClientError(Exception):
    """Base exception for client errors."""

    def __init__(
        self,
        message: str,
        provider: str,
        model: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.provider = provider
        self.model = model
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [f"{self.provider}: {self.message}"]
        if self.model:
            parts.append(f"Model: {self.model}")
        return " | ".join(parts)

    def user_message(self) -> str:
        """Description written into the chat when a generation fails."""
        return str(self)


class MissingCredentialError(ClientError):
    """No API key is configured for the resolved provider."""

    def user_message(self) -> str:
        return f"{self.model or self.provider} API key missing. Please add it in Settings."


class TransportError(ClientError):
    """Non-2xx response, SDK failure or network failure."""

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: int | None = None,
        body: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, provider, **kwargs)
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        text = super().__str__()
        if self.status_code is not None:
            text = f"{text} | HTTP {self.status_code}"
        return text


class AuthenticationError(TransportError):
    """Authentication failed with provider."""

    pass


class RateLimitError(TransportError):
    """Rate limit exceeded."""

    def __init__(
        self, message: str, provider: str, retry_after: int | None = None, **kwargs: Any
    ) -> None:
        super().__init__(message, provider, **kwargs)
        self.retry_after = retry_after


class RetryableError(TransportError):
    """Error that can be retried before any output was received."""

    pass


class GenerationCancelled(Exception):
    """The generation was stopped by the user; not a failure."""

    def __init__(self, provider: str, model: str | None = None):
        self.provider = provider
        self.model = model
        super().__init__(f"{provider}: generation cancelled")


class BaseStreamingClient(ABC):
    """
    Abstract base client for all streaming model providers.

    Subclasses implement :meth:`stream`. Implementations must fail with
    :class:`MissingCredentialError` before touching the network, report
    every other failure as :class:`TransportError`, raise
    :class:`GenerationCancelled` when ``options.cancel_token`` is cancelled,
    and call ``on_partial`` with strictly growing cumulative snapshots.
    """

    def __init__(
        self, provider_name: str, api_key: str | None = None, **kwargs: Any
    ) -> None:
        self.provider_name = provider_name
        self.api_key = api_key or None

        # Configuration from kwargs
        self.timeout = kwargs.get("timeout", 60)
        self.max_retries = kwargs.get("max_retries", 2)
        self.base_delay = kwargs.get("base_delay", 1.0)
        self.max_delay = kwargs.get("max_delay", 30.0)

        logger.info(f"Initialized {self.provider_name} client")

    @abstractmethod
    async def stream(
        self,
        turn: Turn,
        history: list[Turn],
        system_instruction: str | None,
        options: StreamOptions,
        on_partial: PartialCallback | None = None,
    ) -> StreamResult:
        """
        Stream a completion for ``turn`` given the prior ``history``.

        Args:
            turn: The new user turn (text and inline attachments)
            history: Ordered prior turns
            system_instruction: Free-text system instruction
            options: Target model, reasoning budget, mode and cancel token
            on_partial: Invoked after each decoded increment

        Returns:
            Final text and optional thought process

        Raises:
            MissingCredentialError: No key configured, raised before any I/O
            TransportError: HTTP, SDK or network failure
            GenerationCancelled: The cancel token was cancelled
        """
        pass

    def require_api_key(self, model: str) -> str:
        """Return the API key or fail fast without any network call."""
        if not self.api_key:
            raise MissingCredentialError(
                "API key is not configured",
                provider=self.provider_name,
                model=model,
            )
        return self.api_key

    def raise_if_cancelled(self, options: StreamOptions) -> None:
        """Observe the cancel token at a read point."""
        token = options.cancel_token
        if token is not None and token.is_cancelled:
            logger.debug(f"{self.provider_name} stream for {options.model} cancelled")
            raise GenerationCancelled(self.provider_name, options.model)

    async def retry_with_backoff(
        self, operation: Any, *args: Any, **kwargs: Any
    ) -> Any:
        """
        Execute operation with exponential backoff retry logic.

        Only :class:`RetryableError` is retried; everything else, including
        cancellation, propagates immediately.

        Args:
            operation: Async function to execute
            *args, **kwargs: Arguments to pass to operation

        Returns:
            Result of successful operation
        """
        last_exception: RetryableError | None = None

        for attempt in range(self.max_retries + 1):
            try:
                return await operation(*args, **kwargs)
            except RetryableError as e:
                last_exception = e
                if attempt == self.max_retries:
                    break

                delay = min(self.base_delay * (2**attempt), self.max_delay)
                actual_delay = delay + random.uniform(0, delay * 0.1)

                logger.warning(
                    f"Attempt {attempt + 1} failed for {self.provider_name}: {e}. "
                    f"Retrying in {actual_delay:.2f}s"
                )
                await asyncio.sleep(actual_delay)

        if last_exception is not None:
            raise last_exception
        raise ClientError(
            "Operation failed without retryable errors", self.provider_name
        )

    async def aclose(self) -> None:
        """Release transport resources."""
        pass

    async def __aenter__(self) -> "BaseStreamingClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.aclose()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(provider='{self.provider_name}')"
