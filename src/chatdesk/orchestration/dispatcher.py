"""
Conversation dispatcher: the root of the orchestration core.

The dispatcher writes a user turn into a session, routes it to the
adapter serving the session's model, streams partial output into a
placeholder model message, applies the directives embedded in the final
text and records how the generation ended. Each session runs at most one
generation at a time; different sessions stream independently.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence

from ..clients import ClientError, ClientRegistry, GenerationCancelled
from ..config.settings import AppSettings, get_settings
from ..core.models import (
    DEFAULT_SESSION_TITLE,
    Attachment,
    GenerationOutcome,
    GenerationState,
    Message,
    MessageRole,
    Session,
    SessionMode,
    StreamOptions,
)
from ..prompts.manager import PromptManager, get_prompt_manager
from ..protocol.applier import DirectiveApplier
from ..protocol.parser import CommandParser
from .cancellation import CancellationRegistry, CancelToken
from .titles import derive_provisional_title, derive_subtitle
from .workspace import Workspace

logger = logging.getLogger(__name__)

StateListener = Callable[[str], None]


class ConversationDispatcher:
    """
    Dispatches user turns to provider adapters and applies the results.

    Per-session state machine: IDLE -> STREAMING -> COMPLETE | CANCELLED |
    ERRORED -> IDLE. Listeners registered with :meth:`subscribe` are called
    with the session id whenever a session's messages or state change,
    including on every streamed chunk.
    """

    def __init__(
        self,
        workspace: Workspace,
        clients: ClientRegistry,
        settings: AppSettings | None = None,
        prompts: PromptManager | None = None,
        registry: CancellationRegistry | None = None,
        parser: CommandParser | None = None,
        applier: DirectiveApplier | None = None,
    ):
        self.workspace = workspace
        self.clients = clients
        self.settings = settings or get_settings()
        self.prompts = prompts or get_prompt_manager()
        self.registry = registry or CancellationRegistry()
        self.parser = parser or CommandParser()
        self.applier = applier or DirectiveApplier()

        self._busy: set[str] = set()
        self._outcomes: dict[str, GenerationOutcome] = {}
        self._listeners: list[StateListener] = []

    # Observation

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a change listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def state(self, session_id: str) -> GenerationState:
        return GenerationState.STREAMING if session_id in self._busy else GenerationState.IDLE

    def is_busy(self, session_id: str) -> bool:
        return session_id in self._busy

    def last_outcome(self, session_id: str) -> GenerationOutcome | None:
        return self._outcomes.get(session_id)

    def _notify(self, session_id: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(session_id)
            except Exception as e:
                logger.warning(f"State listener failed for session {session_id}: {e}")

    # Control

    def stop(self, session_id: str) -> bool:
        """Abort the session's open generation; False when nothing was running."""
        return self.registry.abort(session_id)

    async def send(
        self,
        session_id: str,
        text: str,
        attachments: Sequence[Attachment] | None = None,
        mode: SessionMode | str | None = None,
        edit_target_id: str | None = None,
        use_thinking: bool = False,
    ) -> GenerationOutcome:
        """
        Send a user turn and stream the model's reply into the session.

        Args:
            session_id: Target session
            text: User text
            attachments: Files sent inline with the turn
            mode: Conversation mode (defaults to the session's mode)
            edit_target_id: Id of an earlier user message to rewrite and regenerate from
            use_thinking: Request the reasoning budget outside execute mode

        Returns:
            How the generation ended. Failures are reported here and in the
            model message, never raised.

        Raises:
            SessionNotFoundError: Unknown session
            LookupError: ``edit_target_id`` is not a message of the session
            ValueError: ``edit_target_id`` is not a user message
        """
        session = self.workspace.get_session(session_id)
        messages = self.workspace.messages_for(session_id)
        mode = SessionMode(mode) if mode else session.mode
        if edit_target_id is not None:
            self._check_edit_target(session_id, edit_target_id)

        # one generation per session: the previous one stops before the list changes
        if self.registry.abort(session_id):
            logger.info(f"Superseding open generation for session {session_id}")

        is_first_user_turn = not any(m.role == MessageRole.USER for m in messages)
        user_index, model_message = self._write_turn(
            session_id, messages, text, list(attachments or []), edit_target_id
        )

        token = self.registry.begin(session_id)
        self._busy.add(session_id)

        if is_first_user_turn and session.title == DEFAULT_SESSION_TITLE:
            title = derive_provisional_title(text, self.settings.generation.title_max_length)
            if title:
                session.title = title
        session.touch()
        self._notify(session_id)

        logger.info(f"Generation started for session {session_id} ({mode.value} mode)")
        try:
            state, error = await self._generate(
                session, messages, user_index, model_message, mode, use_thinking, token
            )
        finally:
            self.registry.end(session_id, token)
            # a newer send for this session owns the busy flag and the outcome,
            # whether or not it has finished yet
            superseded = not self.registry.is_latest(session_id, token)
            if not superseded:
                self._busy.discard(session_id)

        outcome = GenerationOutcome(
            session_id=session_id, message_id=model_message.id, state=state, error=error
        )
        if not superseded:
            self._outcomes[session_id] = outcome
        logger.info(f"Generation for session {session_id} ended: {state.value}")
        self._notify(session_id)
        return outcome

    def _write_turn(
        self,
        session_id: str,
        messages: list[Message],
        text: str,
        attachments: list[Attachment],
        edit_target_id: str | None,
    ) -> tuple[int, Message]:
        """Write the user message and the model placeholder; returns (user index, placeholder)."""
        if edit_target_id is None:
            messages.append(Message(role=MessageRole.USER, content=text, attachments=attachments))
            placeholder = Message(role=MessageRole.MODEL)
            messages.append(placeholder)
            return len(messages) - 2, placeholder

        index, user_message = self._check_edit_target(session_id, edit_target_id)
        user_message.content = text
        user_message.attachments = attachments

        following = messages[index + 1] if index + 1 < len(messages) else None
        if following is not None and following.role == MessageRole.MODEL:
            following.content = ""
            following.thought_process = None
            placeholder = following
        else:
            placeholder = Message(role=MessageRole.MODEL)
            messages.insert(index + 1, placeholder)

        # everything after the regenerated reply belonged to the old branch
        dropped = len(messages) - (index + 2)
        if dropped:
            del messages[index + 2:]
            logger.debug(f"Edit in session {session_id} dropped {dropped} later messages")
        return index, placeholder

    def _check_edit_target(self, session_id: str, edit_target_id: str) -> tuple[int, Message]:
        index, message = self.workspace.find_message(session_id, edit_target_id)
        if message.role != MessageRole.USER:
            raise ValueError(f"Message {edit_target_id} is not a user message")
        return index, message

    async def _generate(
        self,
        session: Session,
        messages: list[Message],
        user_index: int,
        model_message: Message,
        mode: SessionMode,
        use_thinking: bool,
        token: CancelToken,
    ) -> tuple[GenerationState, str | None]:
        session_id = session.id
        history = [message.to_turn() for message in messages[:user_index]]
        turn = messages[user_index].to_turn()

        def on_partial(text: str, thought: str | None) -> None:
            # late chunks of an aborted or superseded generation are dropped
            if not self.registry.is_current(session_id, token):
                logger.debug(f"Dropping stale chunk for session {session_id}")
                return
            model_message.content = text
            if thought is not None:
                model_message.thought_process = thought
            self._notify(session_id)

        try:
            requested = session.model or self.settings.generation.default_model
            agent = self.workspace.find_agent(requested)
            if agent is not None:
                base_instruction = agent.system_instruction
                requested = agent.base_model
            else:
                base_instruction = self.settings.profile.base_knowledge

            model, client = self.clients.resolve(requested, mode)
            model_message.model = model
            system_instruction = await self.prompts.build_system_instruction(
                mode, self.settings.profile.user_name, base_instruction
            )
            options = StreamOptions(
                model=model,
                mode=mode,
                thinking_budget=self._thinking_budget(mode, use_thinking),
                cancel_token=token,
            )

            task = asyncio.create_task(
                client.stream(turn, history, system_instruction, options, on_partial)
            )
            token.on_cancel(task.cancel)
            result = await task

        except (GenerationCancelled, asyncio.CancelledError) as e:
            if isinstance(e, asyncio.CancelledError) and not token.is_cancelled:
                # the caller cancelled send() itself
                raise
            return GenerationState.CANCELLED, None

        except ClientError as e:
            if token.is_cancelled:
                return GenerationState.CANCELLED, None
            logger.error(f"Generation failed for session {session_id}: {e}")
            return self._write_error(model_message, e.user_message())

        except Exception as e:
            if token.is_cancelled:
                return GenerationState.CANCELLED, None
            logger.error(f"Unexpected generation failure for session {session_id}: {e}")
            return self._write_error(model_message, str(e) or e.__class__.__name__)

        if not self.registry.is_current(session_id, token):
            return GenerationState.CANCELLED, None

        parsed = self.parser.process(result.text, self.workspace.labels, session.tasks)
        self.applier.apply(session, parsed.directives, self.workspace.labels)

        model_message.content = parsed.cleaned_text
        if result.thought_process:
            model_message.thought_process = result.thought_process
        session.subtitle = derive_subtitle(parsed.cleaned_text)
        if not self.workspace.is_focused(session_id):
            session.has_new_response = True
        session.touch()
        return GenerationState.COMPLETE, None

    def _thinking_budget(self, mode: SessionMode, use_thinking: bool) -> int | None:
        if mode == SessionMode.EXECUTE:
            return self.settings.generation.execute_thinking_budget
        if use_thinking:
            return self.settings.generation.thinking_budget
        return None

    @staticmethod
    def _write_error(model_message: Message, description: str) -> tuple[GenerationState, str]:
        model_message.content = f"Error: {description}"
        return GenerationState.ERRORED, description
