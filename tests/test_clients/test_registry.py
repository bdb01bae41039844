"""
Tests for provider classification, model resolution and the client registry.
"""

import pytest

from chatdesk.clients import (
    ClientRegistry,
    GeminiClient,
    OpenAICompatibleClient,
    ProviderKind,
    classify_model,
    create_client,
    resolve_model,
)
from chatdesk.config.model_configs import ModelCatalog
from chatdesk.config.settings import AppSettings
from chatdesk.core.models import SessionMode


class TestClassifyModel:
    """Test routing of model ids to provider families."""

    @pytest.mark.parametrize(
        "model, expected",
        [
            ("deepseek-chat", ProviderKind.DEEPSEEK),
            ("DeepSeek-Reasoner", ProviderKind.DEEPSEEK),
            ("moonshot-v1-8k", ProviderKind.MOONSHOT),
            ("meta-llama/llama-3.3-70b-instruct:free", ProviderKind.OPENROUTER),
            ("some-vendor/new-model:free", ProviderKind.OPENROUTER),
            ("gemini-3-flash-preview", ProviderKind.GEMINI),
            ("models/gemini-2.5-flash", ProviderKind.GEMINI),
            ("anthropic/claude-3.5-sonnet", ProviderKind.OPENROUTER),
        ],
    )
    def test_classification(self, model, expected):
        assert classify_model(model, ModelCatalog()) is expected

    def test_free_suffix_wins_over_gemini_prefix(self):
        assert classify_model("gemini-2.0-flash-exp:free", ModelCatalog()) is ProviderKind.OPENROUTER

    def test_catalog_openrouter_ids(self):
        catalog = ModelCatalog(openrouter=["gemini-lookalike/model"])
        assert classify_model("gemini-lookalike/model", catalog) is ProviderKind.OPENROUTER

    def test_only_gemini_is_native(self):
        assert ProviderKind.GEMINI.is_native
        assert not any(kind.is_native for kind in ProviderKind if kind is not ProviderKind.GEMINI)


class TestResolveModel:
    """Test the execute-mode upgrade policy."""

    def test_native_model_upgraded_in_execute_mode(self):
        assert resolve_model("gemini-3-flash-preview", SessionMode.EXECUTE, ModelCatalog()) == (
            "gemini-3-pro-preview"
        )

    def test_native_model_unchanged_in_explore_mode(self):
        assert resolve_model("gemini-3-flash-preview", SessionMode.EXPLORE, ModelCatalog()) == (
            "gemini-3-flash-preview"
        )

    def test_non_native_models_not_upgraded(self):
        for model in ("deepseek-chat", "moonshot-v1-8k", "qwen/qwen3-coder:free"):
            assert resolve_model(model, SessionMode.EXECUTE, ModelCatalog()) == model


class TestCreateClient:
    """Test adapter construction from settings."""

    def test_gemini_client(self):
        settings = AppSettings(gemini_api_key="g-key")
        client = create_client(ProviderKind.GEMINI, settings)
        assert isinstance(client, GeminiClient)
        assert client.api_key == "g-key"
        assert client.execute_thinking_budget == 32768

    def test_gemini_execute_budget_from_settings(self):
        settings = AppSettings(generation={"execute_thinking_budget": 40000})
        client = create_client(ProviderKind.GEMINI, settings)
        assert client.execute_thinking_budget == 40000

    def test_rest_clients_use_configured_endpoints(self):
        settings = AppSettings(deepseek_api_key="d-key")

        deepseek = create_client(ProviderKind.DEEPSEEK, settings)
        moonshot = create_client(ProviderKind.MOONSHOT, settings)
        openrouter = create_client(ProviderKind.OPENROUTER, settings)

        assert isinstance(deepseek, OpenAICompatibleClient)
        assert deepseek.completions_url == "https://api.deepseek.com/chat/completions"
        assert deepseek.api_key == "d-key"
        assert moonshot.completions_url == "https://api.moonshot.cn/v1/chat/completions"
        assert moonshot.api_key is None
        assert openrouter.completions_url == "https://openrouter.ai/api/v1/chat/completions"
        assert openrouter.extra_headers == {"X-Title": "chatdesk"}

    def test_kwargs_override_settings(self):
        settings = AppSettings(gemini_api_key="g-key")
        client = create_client(ProviderKind.GEMINI, settings, api_key="override", timeout=5)
        assert client.api_key == "override"
        assert client.timeout == 5


class TestClientRegistry:
    """Test the provider-kind to adapter strategy map."""

    def test_from_settings_builds_every_family(self):
        registry = ClientRegistry.from_settings(AppSettings(), ModelCatalog())
        for kind in ProviderKind:
            assert registry.get(kind).provider_name == kind.value

    def test_resolve_returns_concrete_model_and_adapter(self, fake_client_factory):
        gemini = fake_client_factory()
        deepseek = fake_client_factory(provider_name="deepseek")
        registry = ClientRegistry(
            {ProviderKind.GEMINI: gemini, ProviderKind.DEEPSEEK: deepseek}, ModelCatalog()
        )

        assert registry.resolve("gemini-2.5-flash", SessionMode.EXECUTE) == (
            "gemini-3-pro-preview", gemini
        )
        assert registry.resolve("deepseek-chat", SessionMode.EXECUTE) == ("deepseek-chat", deepseek)

    def test_unregistered_family_raises(self):
        registry = ClientRegistry({}, ModelCatalog())
        with pytest.raises(ValueError, match="moonshot"):
            registry.get(ProviderKind.MOONSHOT)

    @pytest.mark.asyncio
    async def test_aclose_closes_every_client(self, fake_client_factory):
        closed = []
        client = fake_client_factory()

        async def aclose():
            closed.append(True)

        client.aclose = aclose
        registry = ClientRegistry({ProviderKind.GEMINI: client}, ModelCatalog())

        await registry.aclose()
        assert closed == [True]
