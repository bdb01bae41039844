"""
Provider adapters for the model families chatdesk can talk to.

The package exposes one adapter per wire protocol behind the
BaseStreamingClient contract, a pure classification function from model
id to provider family, and a registry mapping each family to its adapter.
"""

import logging
from enum import Enum
from typing import Any

from ..config.model_configs import ModelCatalog, get_model_catalog
from ..config.settings import AppSettings, get_settings
from ..core.models import SessionMode
from .base import (
    AuthenticationError,
    BaseStreamingClient,
    ClientError,
    GenerationCancelled,
    MissingCredentialError,
    PartialCallback,
    RateLimitError,
    RetryableError,
    TransportError,
)
from .gemini import GeminiClient
from .openai_compatible import OpenAICompatibleClient, SSEDecoder

logger = logging.getLogger(__name__)

__all__ = [
    "BaseStreamingClient",
    "PartialCallback",
    "ClientError",
    "MissingCredentialError",
    "TransportError",
    "AuthenticationError",
    "RateLimitError",
    "RetryableError",
    "GenerationCancelled",
    "GeminiClient",
    "OpenAICompatibleClient",
    "SSEDecoder",
    "ProviderKind",
    "ClientRegistry",
    "classify_model",
    "resolve_model",
    "create_client",
]


class ProviderKind(str, Enum):
    """Provider families; GEMINI is the native SDK family."""

    GEMINI = "gemini"
    DEEPSEEK = "deepseek"
    MOONSHOT = "moonshot"
    OPENROUTER = "openrouter"

    @property
    def is_native(self) -> bool:
        return self is ProviderKind.GEMINI


def classify_model(model: str, catalog: ModelCatalog | None = None) -> ProviderKind:
    """
    Classify a model id into its provider family.

    Args:
        model: Model identifier
        catalog: Model catalog (defaults to the global one)

    Returns:
        The provider family

    Examples:
        >>> classify_model("deepseek-chat")
        <ProviderKind.DEEPSEEK: 'deepseek'>
        >>> classify_model("meta-llama/llama-3.3-70b-instruct:free")
        <ProviderKind.OPENROUTER: 'openrouter'>
        >>> classify_model("gemini-3-flash-preview")
        <ProviderKind.GEMINI: 'gemini'>
    """
    catalog = catalog or get_model_catalog()
    model_lower = model.strip().lower()

    if model_lower.startswith("deepseek-"):
        return ProviderKind.DEEPSEEK
    if model_lower.startswith("moonshot-"):
        return ProviderKind.MOONSHOT
    if model_lower.endswith(":free") or catalog.is_openrouter_model(model_lower):
        return ProviderKind.OPENROUTER
    if model_lower.startswith(("gemini-", "models/gemini-")):
        return ProviderKind.GEMINI

    # Anything unrecognised goes through the aggregator
    return ProviderKind.OPENROUTER


def resolve_model(
    model: str, mode: SessionMode, catalog: ModelCatalog | None = None
) -> str:
    """Apply the execute-mode upgrade policy to a model id."""
    catalog = catalog or get_model_catalog()
    if mode == SessionMode.EXECUTE and classify_model(model, catalog).is_native:
        if model != catalog.execute_upgrade_model:
            logger.debug(f"Execute mode: upgrading {model} to {catalog.execute_upgrade_model}")
        return catalog.execute_upgrade_model
    return model


def create_client(
    kind: ProviderKind, settings: AppSettings | None = None, **kwargs: Any
) -> BaseStreamingClient:
    """
    Create the adapter for a provider family from application settings.

    Missing API keys are not an error here; the adapter fails fast with
    MissingCredentialError when it is first asked to stream.

    Args:
        kind: Provider family
        settings: Application settings (defaults to the global settings)
        **kwargs: Adapter overrides (``http_client``, ``sdk_client``, ...)

    Returns:
        Configured adapter instance
    """
    settings = settings or get_settings()
    client_config: dict[str, Any] = {
        "api_key": settings.get_api_key(kind.value),
        "timeout": settings.api.timeout,
        "max_retries": settings.api.retries,
        "base_delay": settings.api.base_delay,
        "max_delay": settings.api.max_delay,
    }
    if kind is ProviderKind.GEMINI:
        client_config["execute_thinking_budget"] = settings.generation.execute_thinking_budget
    client_config.update(kwargs)

    if kind is ProviderKind.GEMINI:
        return GeminiClient(**client_config)

    extra_headers = None
    if kind is ProviderKind.OPENROUTER:
        extra_headers = {"X-Title": settings.app_name}
    return OpenAICompatibleClient(
        provider_name=kind.value,
        base_url=settings.get_base_url(kind.value),
        extra_headers=extra_headers,
        **client_config,
    )


class ClientRegistry:
    """Maps each provider family to its adapter instance."""

    def __init__(
        self,
        clients: dict[ProviderKind, BaseStreamingClient] | None = None,
        catalog: ModelCatalog | None = None,
    ):
        self._clients: dict[ProviderKind, BaseStreamingClient] = dict(clients or {})
        self.catalog = catalog or get_model_catalog()

    @classmethod
    def from_settings(
        cls, settings: AppSettings | None = None, catalog: ModelCatalog | None = None
    ) -> "ClientRegistry":
        """Build one adapter per provider family."""
        settings = settings or get_settings()
        clients = {kind: create_client(kind, settings) for kind in ProviderKind}
        return cls(clients, catalog)

    def register(self, kind: ProviderKind, client: BaseStreamingClient) -> None:
        self._clients[kind] = client

    def get(self, kind: ProviderKind) -> BaseStreamingClient:
        try:
            return self._clients[kind]
        except KeyError:
            raise ValueError(f"No client registered for provider: {kind.value}") from None

    def classify(self, model: str) -> ProviderKind:
        return classify_model(model, self.catalog)

    def resolve(self, model: str, mode: SessionMode) -> tuple[str, BaseStreamingClient]:
        """Return the concrete model id and the adapter that serves it."""
        concrete = resolve_model(model, mode, self.catalog)
        return concrete, self.get(self.classify(concrete))

    async def aclose(self) -> None:
        for client in self._clients.values():
            await client.aclose()
