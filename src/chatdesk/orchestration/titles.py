"""
Session titles: the provisional title taken from the first user turn and
AI regeneration from recent history.
"""

import logging

from ..clients import ClientRegistry
from ..config.settings import AppSettings, get_settings
from ..core.models import MessageRole, Part, SessionMode, StreamOptions, Turn
from ..prompts.manager import PromptManager, get_prompt_manager
from .workspace import Workspace

logger = logging.getLogger(__name__)

ELLIPSIS = "..."
SUBTITLE_MAX_LENGTH = 100


def truncate_text(text: str, max_length: int) -> str:
    """Collapse whitespace and cut to ``max_length`` characters, ellipsis included."""
    text = " ".join(text.split())
    if len(text) <= max_length:
        return text
    return text[:max_length - len(ELLIPSIS)].rstrip() + ELLIPSIS


def derive_provisional_title(text: str, max_length: int = 40) -> str | None:
    """Title for a session from its first user message; None for blank text."""
    title = truncate_text(text, max_length)
    return title or None


def derive_subtitle(text: str, max_length: int = SUBTITLE_MAX_LENGTH) -> str:
    return truncate_text(text, max_length)


class TitleGenerator:
    """
    Regenerates a session title from its recent conversation.

    The last ``title_history_window`` messages are sent with a fixed title
    request to the catalog's title model. Any failure keeps the current title.
    """

    def __init__(
        self,
        workspace: Workspace,
        clients: ClientRegistry,
        settings: AppSettings | None = None,
        prompts: PromptManager | None = None,
    ):
        self.workspace = workspace
        self.clients = clients
        self.settings = settings or get_settings()
        self.prompts = prompts or get_prompt_manager()

    async def regenerate(self, session_id: str) -> str:
        """
        Ask the title model for a new title and apply it.

        Returns:
            The session's title afterwards (unchanged on failure)
        """
        session = self.workspace.get_session(session_id)
        window = self.settings.generation.title_history_window
        messages = [m for m in self.workspace.messages_for(session_id) if m.content.strip()]
        if not messages:
            logger.debug(f"Session {session_id} has no content to title")
            return session.title

        history = [message.to_turn() for message in messages[-window:]]
        try:
            request = await self.prompts.render_prompt("title_request", {})
            turn = Turn(role=MessageRole.USER, parts=[Part(text=request)])
            model, client = self.clients.resolve(
                self.clients.catalog.title_model, SessionMode.EXPLORE
            )
            result = await client.stream(turn, history, None, StreamOptions(model=model))
        except Exception as e:
            # any failure keeps the current title
            logger.warning(f"Title regeneration failed for session {session_id}: {e}")
            return session.title

        title = result.text.strip().strip("\"'").strip()
        if not title:
            logger.warning(f"Title model returned nothing for session {session_id}")
            return session.title

        session.title = truncate_text(title, self.settings.generation.title_max_length)
        session.touch()
        logger.info(f"Regenerated title for session {session_id}: {session.title!r}")
        return session.title
