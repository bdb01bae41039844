"""
Core domain models for chatdesk.
"""

from .models import (
    DEFAULT_LABEL_COLOR,
    DEFAULT_SESSION_TITLE,
    Agent,
    Attachment,
    Directive,
    DirectiveKind,
    GenerationOutcome,
    GenerationState,
    Label,
    Message,
    MessageRole,
    Part,
    Session,
    SessionMode,
    SessionStatus,
    StreamOptions,
    StreamResult,
    Subtask,
    Turn,
)

__all__ = [
    "DEFAULT_LABEL_COLOR",
    "DEFAULT_SESSION_TITLE",
    "Agent",
    "Attachment",
    "Directive",
    "DirectiveKind",
    "GenerationOutcome",
    "GenerationState",
    "Label",
    "Message",
    "MessageRole",
    "Part",
    "Session",
    "SessionMode",
    "SessionStatus",
    "StreamOptions",
    "StreamResult",
    "Subtask",
    "Turn",
]
