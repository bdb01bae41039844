"""
Rehydrating and saving a workspace through a key-value store.
"""

import logging

from pydantic import TypeAdapter, ValidationError

from ..config.settings import ProfileConfig
from ..core.models import Agent, Label, Message, Session
from ..orchestration.workspace import Workspace
from .store import KeyValueStore

logger = logging.getLogger(__name__)

SESSIONS_KEY = "sessions"
MESSAGES_KEY = "messages"
LABELS_KEY = "labels"
AGENTS_KEY = "agents"
PROFILE_KEY = "profile"

_sessions_adapter = TypeAdapter(list[Session])
_messages_adapter = TypeAdapter(dict[str, list[Message]])
_labels_adapter = TypeAdapter(list[Label])
_agents_adapter = TypeAdapter(list[Agent])


class WorkspaceRepository:
    """Loads and saves workspace state as JSON values, one key per collection."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def load(self) -> Workspace:
        """Rebuild a workspace; missing keys yield empty collections."""
        sessions = self._read(SESSIONS_KEY, _sessions_adapter, [])
        messages = self._read(MESSAGES_KEY, _messages_adapter, {})

        # messages of sessions that no longer exist are dropped
        known = {session.id for session in sessions}
        orphaned = set(messages) - known
        if orphaned:
            logger.warning(f"Dropping messages of {len(orphaned)} unknown sessions")
        messages = {sid: msgs for sid, msgs in messages.items() if sid in known}

        workspace = Workspace(
            sessions=sessions,
            messages=messages,
            labels=self._read(LABELS_KEY, _labels_adapter, []),
            agents=self._read(AGENTS_KEY, _agents_adapter, []),
        )
        logger.info(f"Loaded workspace with {len(workspace.sessions)} sessions")
        return workspace

    def save(self, workspace: Workspace) -> None:
        self.store.set(SESSIONS_KEY, _sessions_adapter.dump_json(workspace.sessions).decode())
        self.store.set(MESSAGES_KEY, _messages_adapter.dump_json(workspace.messages).decode())
        self.store.set(LABELS_KEY, _labels_adapter.dump_json(workspace.labels).decode())
        self.store.set(AGENTS_KEY, _agents_adapter.dump_json(workspace.agents).decode())
        logger.debug(f"Saved workspace with {len(workspace.sessions)} sessions")

    def load_profile(self) -> ProfileConfig | None:
        raw = self.store.get(PROFILE_KEY)
        if raw is None:
            return None
        try:
            return ProfileConfig.model_validate_json(raw)
        except ValidationError as e:
            raise ValueError(f"Stored {PROFILE_KEY} is invalid: {e}") from e

    def save_profile(self, profile: ProfileConfig) -> None:
        self.store.set(PROFILE_KEY, profile.model_dump_json())

    def _read(self, key, adapter, default):
        raw = self.store.get(key)
        if raw is None:
            return default
        try:
            return adapter.validate_json(raw)
        except ValidationError as e:
            raise ValueError(f"Stored {key} is invalid: {e}") from e
