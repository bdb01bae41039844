"""
Conversation orchestration: dispatching turns, cancellation, focus history
and the in-memory workspace.
"""

from .cancellation import CancellationRegistry, CancelToken
from .dispatcher import ConversationDispatcher
from .history import SessionHistoryNavigator
from .titles import TitleGenerator, derive_provisional_title, derive_subtitle
from .workspace import SessionNotFoundError, Workspace

__all__ = [
    "CancelToken",
    "CancellationRegistry",
    "ConversationDispatcher",
    "SessionHistoryNavigator",
    "SessionNotFoundError",
    "TitleGenerator",
    "Workspace",
    "derive_provisional_title",
    "derive_subtitle",
]
