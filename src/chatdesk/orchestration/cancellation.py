"""
Cancellation tokens and the per-session registry of in-flight generations.
"""

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class CancelToken:
    """Cancellation signal for one generation.

    Adapters poll ``is_cancelled`` at every read; the dispatcher also
    registers a callback that cancels the task awaiting network I/O, so a
    stalled provider stops promptly.

    Example:
        token = registry.begin(session_id)
        token.on_cancel(task.cancel)
        registry.abort(session_id)  # is_cancelled is now True
    """

    def __init__(self, session_id: str):
        self.session_id = session_id
        self._cancelled = False
        self._callbacks: list[Callable[[], object]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Request cancellation. Idempotent; callbacks run once."""
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Cancel callback for session {self.session_id} failed: {e}")

    def on_cancel(self, callback: Callable[[], object]) -> None:
        """Register a callback; runs immediately if already cancelled."""
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise asyncio.CancelledError(f"Generation for session {self.session_id} cancelled")

    def __repr__(self) -> str:
        return f"CancelToken(session_id='{self.session_id}', cancelled={self._cancelled})"


class CancellationRegistry:
    """
    Maps a session to the token of its in-flight generation.

    At most one token per session is registered. ``begin`` replaces (and
    cancels) any previous token; ``end`` only removes the token it is given,
    so a late-finishing generation cannot unregister its successor.

    The most recently begun token of each session is remembered after
    ``end`` and ``abort``; :meth:`is_latest` tells a generation whether a
    newer one has started since, even if that newer one already finished.
    """

    def __init__(self):
        self._tokens: dict[str, CancelToken] = {}
        self._latest: dict[str, CancelToken] = {}

    def begin(self, session_id: str) -> CancelToken:
        """Register and return a fresh token for ``session_id``."""
        previous = self._tokens.get(session_id)
        if previous is not None:
            logger.debug(f"Replacing open generation token for session {session_id}")
            previous.cancel()

        token = CancelToken(session_id)
        self._tokens[session_id] = token
        self._latest[session_id] = token
        return token

    def abort(self, session_id: str) -> bool:
        """Cancel and remove the session's token; True if there was one."""
        token = self._tokens.pop(session_id, None)
        if token is None:
            return False
        token.cancel()
        logger.info(f"Aborted generation for session {session_id}")
        return True

    def end(self, session_id: str, token: CancelToken | None = None) -> None:
        """Remove the session's token, or only ``token`` if given."""
        current = self._tokens.get(session_id)
        if current is None:
            return
        if token is None or current is token:
            del self._tokens[session_id]

    def is_current(self, session_id: str, token: CancelToken) -> bool:
        """True while ``token`` is the session's live, uncancelled token."""
        return self._tokens.get(session_id) is token and not token.is_cancelled

    def is_latest(self, session_id: str, token: CancelToken) -> bool:
        """True if no generation has begun for the session after ``token``."""
        return self._latest.get(session_id) is token

    def is_active(self, session_id: str) -> bool:
        return session_id in self._tokens

    def active_sessions(self) -> list[str]:
        return list(self._tokens)

    def abort_all(self) -> int:
        """Cancel every open generation; returns how many were open."""
        session_ids = list(self._tokens)
        for session_id in session_ids:
            self.abort(session_id)
        return len(session_ids)
