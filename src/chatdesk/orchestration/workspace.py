"""
In-memory workspace: sessions, their messages, labels, agents and focus.

The workspace is the state the dispatcher mutates and the application
renders. Direct user actions (rename, status changes, flags, labels,
subtasks, focus navigation) live here; generation-driven mutations go
through the dispatcher.
"""

import logging

from ..core.models import (
    DEFAULT_LABEL_COLOR,
    Agent,
    Label,
    Message,
    Session,
    SessionMode,
    SessionStatus,
    Subtask,
)
from ..protocol.parser import find_label
from .history import SessionHistoryNavigator

logger = logging.getLogger(__name__)


class SessionNotFoundError(LookupError):
    """Raised when an action targets an unknown session id."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class Workspace:
    """
    Session collection with per-session message lists and a focus history.

    Sessions are kept newest first. Each session owns exactly one message
    list, created and destroyed with it.
    """

    def __init__(
        self,
        sessions: list[Session] | None = None,
        messages: dict[str, list[Message]] | None = None,
        labels: list[Label] | None = None,
        agents: list[Agent] | None = None,
    ):
        self.sessions: list[Session] = list(sessions or [])
        self.messages: dict[str, list[Message]] = dict(messages or {})
        self.labels: list[Label] = list(labels or [])
        self.agents: list[Agent] = list(agents or [])
        self.navigator = SessionHistoryNavigator()

        for session in self.sessions:
            self.messages.setdefault(session.id, [])

    # Lookup

    def get_session(self, session_id: str) -> Session:
        for session in self.sessions:
            if session.id == session_id:
                return session
        raise SessionNotFoundError(session_id)

    def has_session(self, session_id: str) -> bool:
        return any(session.id == session_id for session in self.sessions)

    def messages_for(self, session_id: str) -> list[Message]:
        """The session's message list (the live list, not a copy)."""
        if session_id not in self.messages:
            raise SessionNotFoundError(session_id)
        return self.messages[session_id]

    def find_message(self, session_id: str, message_id: str) -> tuple[int, Message]:
        for index, message in enumerate(self.messages_for(session_id)):
            if message.id == message_id:
                return index, message
        raise LookupError(f"Message {message_id} not found in session {session_id}")

    def find_agent(self, agent_id: str | None) -> Agent | None:
        if not agent_id:
            return None
        return next((agent for agent in self.agents if agent.id == agent_id), None)

    def search(self, query: str) -> list[Session]:
        """Sessions whose title or subtitle contains ``query``, case-insensitively."""
        wanted = query.strip().casefold()
        if not wanted:
            return list(self.sessions)
        return [
            session for session in self.sessions
            if wanted in session.title.casefold() or wanted in session.subtitle.casefold()
        ]

    # Session lifecycle

    def create_session(
        self,
        model: str | None = None,
        mode: SessionMode = SessionMode.EXPLORE,
        focus: bool = True,
    ) -> Session:
        session = Session(model=model, mode=mode)
        self.sessions.insert(0, session)
        self.messages[session.id] = []
        logger.info(f"Created session {session.id}")
        if focus:
            self.focus(session.id)
        return session

    def delete_session(self, session_id: str) -> None:
        session = self.get_session(session_id)
        self.sessions.remove(session)
        self.messages.pop(session_id, None)
        self.navigator.forget(session_id)
        logger.info(f"Deleted session {session_id}")

    # Session metadata

    def rename(self, session_id: str, title: str) -> None:
        title = title.strip()
        if not title:
            raise ValueError("Session title cannot be empty")
        session = self.get_session(session_id)
        session.title = title
        session.touch()

    def set_status(self, session_id: str, status: SessionStatus | str) -> None:
        session = self.get_session(session_id)
        session.status = SessionStatus(status)
        session.touch()

    def toggle_archive(self, session_id: str) -> SessionStatus:
        """Archive the session, or restore an archived one to ``todo``."""
        session = self.get_session(session_id)
        session.status = (
            SessionStatus.TODO if session.status == SessionStatus.ARCHIVE else SessionStatus.ARCHIVE
        )
        session.touch()
        return session.status

    def toggle_flag(self, session_id: str) -> bool:
        session = self.get_session(session_id)
        session.is_flagged = not session.is_flagged
        session.touch()
        return session.is_flagged

    def set_mode(self, session_id: str, mode: SessionMode | str) -> None:
        session = self.get_session(session_id)
        session.mode = SessionMode(mode)

    def set_model(self, session_id: str, model: str) -> None:
        session = self.get_session(session_id)
        session.model = model

    # Labels

    def create_label(self, name: str, color: str = DEFAULT_LABEL_COLOR) -> Label:
        """Create a label, or return the existing one with the same name."""
        existing = find_label(self.labels, name)
        if existing is not None:
            return existing
        label = Label(name=name, color=color)
        self.labels.append(label)
        return label

    def toggle_label(self, session_id: str, label_id: str) -> bool:
        """Attach or detach a label; returns True when it is now attached."""
        if not any(label.id == label_id for label in self.labels):
            raise LookupError(f"Label not found: {label_id}")
        session = self.get_session(session_id)
        if label_id in session.label_ids:
            session.label_ids = [lid for lid in session.label_ids if lid != label_id]
            attached = False
        else:
            session.label_ids = [*session.label_ids, label_id]
            attached = True
        session.touch()
        return attached

    # Subtasks

    def add_subtask(self, session_id: str, text: str) -> Subtask:
        text = text.strip()
        if not text:
            raise ValueError("Subtask text cannot be empty")
        session = self.get_session(session_id)
        task = Subtask(text=text)
        session.tasks.append(task)
        session.touch()
        return task

    def set_subtask_completed(self, session_id: str, task_id: str, completed: bool = True) -> None:
        task = self._get_task(session_id, task_id)
        task.completed = completed
        self.get_session(session_id).touch()

    def remove_subtask(self, session_id: str, task_id: str) -> None:
        session = self.get_session(session_id)
        task = self._get_task(session_id, task_id)
        session.tasks.remove(task)
        session.touch()

    def _get_task(self, session_id: str, task_id: str) -> Subtask:
        session = self.get_session(session_id)
        for task in session.tasks:
            if task.id == task_id:
                return task
        raise LookupError(f"Subtask {task_id} not found in session {session_id}")

    # Agents

    def add_agent(self, agent: Agent) -> None:
        self.agents = [a for a in self.agents if a.id != agent.id]
        self.agents.append(agent)

    def remove_agent(self, agent_id: str) -> None:
        self.agents = [a for a in self.agents if a.id != agent_id]

    # Focus

    @property
    def focused_id(self) -> str | None:
        return self.navigator.current

    def is_focused(self, session_id: str) -> bool:
        return self.navigator.current == session_id

    def focus(self, session_id: str) -> None:
        """Focus a session; re-focusing the focused session is a no-op."""
        session = self.get_session(session_id)
        if self.is_focused(session_id):
            return
        self.navigator.visit(session_id)
        session.has_new_response = False

    def back(self) -> str | None:
        return self._land(self.navigator.back())

    def forward(self) -> str | None:
        return self._land(self.navigator.forward())

    def _land(self, session_id: str | None) -> str | None:
        if session_id is not None and self.has_session(session_id):
            self.get_session(session_id).has_new_response = False
        return session_id
