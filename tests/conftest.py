"""
Shared test fixtures and configuration for chatdesk tests.

This file provides global state management, environment isolation and
fake streaming adapters so that no test touches the network.
"""

import asyncio
import logging
import os
import warnings
from unittest.mock import AsyncMock, patch

import pytest

from chatdesk.clients import BaseStreamingClient, ClientRegistry, ProviderKind
from chatdesk.config.model_configs import ModelCatalog, model_catalog_manager
from chatdesk.config.settings import AppSettings, config_manager
from chatdesk.core.models import StreamResult
from chatdesk.orchestration import ConversationDispatcher, Workspace
from chatdesk.prompts import manager as prompt_manager_module
from chatdesk.prompts.manager import PromptManager

warnings.filterwarnings("ignore", category=DeprecationWarning)

logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("chatdesk").setLevel(logging.WARNING)

SENSITIVE_ENV_VARS = [
    "LOG_LEVEL",
    "ENVIRONMENT",
    "APP_NAME",
    "GEMINI_API_KEY",
    "OPENROUTER_API_KEY",
    "DEEPSEEK_API_KEY",
    "MOONSHOT_API_KEY",
]
SENSITIVE_ENV_PREFIXES = ("ENDPOINTS__", "API__", "GENERATION__", "PROFILE__", "STORAGE__")


@pytest.fixture(autouse=True, scope="function")
def isolated_environment(tmp_path):
    """
    Isolate environment variables for each test to prevent test pollution.

    Settings must not inherit keys from the host system or a .env file.
    """
    original_env = {
        var: value
        for var, value in os.environ.items()
        if var.upper() in SENSITIVE_ENV_VARS or var.upper().startswith(SENSITIVE_ENV_PREFIXES)
    }
    for var in original_env:
        del os.environ[var]

    # Change working directory to temp path to avoid loading .env files
    original_cwd = os.getcwd()
    os.chdir(tmp_path)

    yield

    os.chdir(original_cwd)
    for var in list(os.environ):
        if var.upper() in SENSITIVE_ENV_VARS or var.upper().startswith(SENSITIVE_ENV_PREFIXES):
            del os.environ[var]
    os.environ.update(original_env)


@pytest.fixture(autouse=True, scope="function")
def reset_global_state():
    """Reset configuration, catalog and prompt manager singletons around each test."""
    _reset_all_global_state()
    yield
    _reset_all_global_state()


def _reset_all_global_state():
    config_manager.reset()
    model_catalog_manager.reset()
    prompt_manager_module._global_prompt_manager = None


@pytest.fixture
def instant_sleep():
    """Make retry backoff return immediately."""
    with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


@pytest.fixture
def settings():
    """Settings with a Gemini key only."""
    return AppSettings(gemini_api_key="test-gemini-key")


@pytest.fixture
def catalog():
    return ModelCatalog()


@pytest.fixture
def prompts():
    return PromptManager()


class FakeStreamingClient(BaseStreamingClient):
    """
    Scripted adapter emitting cumulative snapshots.

    When ``pause_before`` is set, the stream stops before emitting that
    snapshot index, sets ``paused`` and waits for ``resume``.
    """

    def __init__(
        self,
        snapshots=None,
        thought=None,
        error=None,
        pause_before=None,
        provider_name="gemini",
        api_key="test-key",
    ):
        super().__init__(provider_name, api_key)
        self.snapshots = list(snapshots or [])
        self.thought = thought
        self.error = error
        self.pause_before = pause_before
        self.paused = asyncio.Event()
        self.resume = asyncio.Event()
        self.calls = []
        self.on_partial = None

    async def stream(self, turn, history, system_instruction, options, on_partial=None):
        self.require_api_key(options.model)
        self.calls.append(
            {
                "turn": turn,
                "history": history,
                "system_instruction": system_instruction,
                "options": options,
            }
        )
        self.on_partial = on_partial

        text = ""
        for index, snapshot in enumerate(self.snapshots):
            if index == self.pause_before:
                self.paused.set()
                await self.resume.wait()
            self.raise_if_cancelled(options)
            text = snapshot
            if on_partial:
                on_partial(text, self.thought)

        if self.error is not None:
            raise self.error
        return StreamResult(text=text, thought_process=self.thought, model=options.model)


@pytest.fixture
def fake_client_factory():
    """Build FakeStreamingClient instances."""
    return FakeStreamingClient


@pytest.fixture
def fake_gemini():
    return FakeStreamingClient(snapshots=["Hello", "Hello there"])


@pytest.fixture
def registry(fake_gemini, catalog):
    """Client registry whose native family is the fake adapter."""
    return ClientRegistry({ProviderKind.GEMINI: fake_gemini}, catalog)


@pytest.fixture
def workspace():
    return Workspace()


@pytest.fixture
def dispatcher(workspace, registry, settings, prompts):
    return ConversationDispatcher(workspace, registry, settings=settings, prompts=prompts)
