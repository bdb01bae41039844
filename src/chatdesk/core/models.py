"""
Core Pydantic models for chatdesk.

This module contains the data models shared by the provider clients, the
command protocol and the orchestration layer, providing type safety,
validation and JSON serialization for the persistence boundary.
"""

import re
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_SESSION_TITLE = "New Session"
DEFAULT_LABEL_COLOR = "#737373"

_DATA_URL_PREFIX = re.compile(r"^data:[^,]*,")


def new_id() -> str:
    """Generate an identifier for sessions, messages, labels and tasks."""
    return uuid4().hex


def utc_now() -> datetime:
    return datetime.now(UTC)


class SessionStatus(str, Enum):
    """Workflow status of a session."""
    BACKLOG = "backlog"
    TODO = "todo"
    NEEDS_REVIEW = "needs_review"
    DONE = "done"
    CANCELLED = "cancelled"
    ARCHIVE = "archive"

    @classmethod
    def parse(cls, value: str) -> "SessionStatus | None":
        """Case-insensitive, whitespace-tolerant lookup; None when unknown."""
        normalized = value.strip().lower()
        for status in cls:
            if status.value == normalized:
                return status
        return None


class SessionMode(str, Enum):
    """Conversation mode of a session."""
    EXPLORE = "explore"
    EXECUTE = "execute"


class MessageRole(str, Enum):
    USER = "user"
    MODEL = "model"


class GenerationState(str, Enum):
    """Lifecycle of one generation for a session."""
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    ERRORED = "errored"


class DirectiveKind(str, Enum):
    """Kinds of inline directives a model can emit."""
    RETITLE = "title"
    SET_STATUS = "status"
    ADD_LABEL = "label"
    ADD_TASK = "add_task"
    COMPLETE_TASK = "done_task"
    REMOVE_TASK = "remove_task"


class Attachment(BaseModel):
    """A file attached to a user message."""
    name: str = Field(..., description="Original file name")
    mime_type: str = Field(..., description="MIME type of the payload")
    data: str = Field(..., description="Base64 payload, optionally as a data URL")
    size: int = Field(default=0, ge=0, description="Size in bytes")

    @property
    def payload(self) -> str:
        """Base64 payload without any ``data:<mime>;base64,`` prefix."""
        return _DATA_URL_PREFIX.sub("", self.data, count=1)


class Subtask(BaseModel):
    """A checklist item attached to a session."""
    id: str = Field(default_factory=new_id)
    text: str = Field(..., description="Task text")
    completed: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now)


class Label(BaseModel):
    """A workspace-wide label that sessions can reference."""
    id: str = Field(default_factory=new_id)
    name: str = Field(..., description="Display name")
    color: str = Field(default=DEFAULT_LABEL_COLOR, description="Display color")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("Label name cannot be empty")
        return v.strip()


class Agent(BaseModel):
    """A custom agent: a base model plus its own system instruction."""
    id: str = Field(default_factory=new_id)
    name: str = Field(..., description="Agent name")
    base_model: str = Field(..., description="Model identifier the agent runs on")
    description: str = Field(default="")
    system_instruction: str = Field(..., description="Instruction replacing the base knowledge")


class Session(BaseModel):
    """A chat thread with its workflow metadata."""
    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=new_id)
    title: str = Field(default=DEFAULT_SESSION_TITLE)
    subtitle: str = Field(default="", description="Preview of the latest reply")
    status: SessionStatus = Field(default=SessionStatus.TODO)
    label_ids: list[str] = Field(default_factory=list, description="Unique label references")
    tasks: list[Subtask] = Field(default_factory=list)
    is_flagged: bool = Field(default=False)
    mode: SessionMode = Field(default=SessionMode.EXPLORE)
    model: str | None = Field(default=None, description="Active model or agent id")
    has_new_response: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("label_ids")
    @classmethod
    def validate_label_ids(cls, v):
        # keep first occurrence of every id
        return list(dict.fromkeys(v))

    def touch(self) -> None:
        self.updated_at = utc_now()


class Message(BaseModel):
    """One chat bubble; belongs to exactly one session."""
    id: str = Field(default_factory=new_id)
    role: MessageRole = Field(..., description="Author of the message")
    content: str = Field(default="")
    created_at: datetime = Field(default_factory=utc_now)
    attachments: list[Attachment] = Field(default_factory=list)
    thought_process: str | None = Field(default=None, description="Surfaced model reasoning")
    model: str | None = Field(default=None, description="Model that produced a model message")

    def to_turn(self) -> "Turn":
        """Provider-neutral turn: text first, then one inline part per attachment.

        A turn never goes out empty; a single space stands in for missing content.
        """
        parts = [Part(text=self.content)] if self.content.strip() else []
        parts.extend(
            Part(mime_type=attachment.mime_type, data=attachment.payload)
            for attachment in self.attachments
        )
        if not parts:
            parts.append(Part(text=" "))
        return Turn(role=self.role, parts=parts)


class Directive(BaseModel):
    """An instruction extracted from model text.

    ``value`` is the trimmed payload (the parsed status value for
    ``SET_STATUS``). ``target_id`` is the resolved label or task id;
    ``new_label`` is set when an ``ADD_LABEL`` payload matched no existing
    label and a label has to be created on application.
    """
    kind: DirectiveKind
    value: str
    target_id: str | None = None
    new_label: Label | None = None


# Provider adapter I/O


class Part(BaseModel):
    """A single part of a conversation turn: text or inline data."""
    text: str | None = None
    mime_type: str | None = None
    data: str | None = Field(default=None, description="Base64 inline payload")

    @property
    def is_inline(self) -> bool:
        return self.data is not None


class Turn(BaseModel):
    """A turn in provider-neutral form: role plus ordered parts."""
    role: MessageRole
    parts: list[Part] = Field(default_factory=list)

    @property
    def text(self) -> str:
        return " ".join(p.text for p in self.parts if p.text)


class StreamOptions(BaseModel):
    """Per-call options for a provider stream."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    model: str = Field(..., description="Concrete provider model id")
    mode: SessionMode = Field(default=SessionMode.EXPLORE)
    thinking_budget: int | None = Field(default=None, ge=0, description="Reasoning budget in tokens")
    cancel_token: Any = Field(default=None, description="CancelToken observed between reads")


class StreamResult(BaseModel):
    """Final outcome of a provider stream."""
    text: str = Field(default="")
    thought_process: str | None = None
    model: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class GenerationOutcome(BaseModel):
    """What a dispatcher ``send`` ended with."""
    session_id: str
    message_id: str
    state: GenerationState
    error: str | None = None
