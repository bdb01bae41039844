"""
Back/forward navigation over visited sessions.
"""

import logging

logger = logging.getLogger(__name__)


class SessionHistoryNavigator:
    """
    Browser-style visit history with a cursor.

    Visiting while not at the tip discards the forward branch. Consecutive
    identical visits are recorded as-is; callers decide whether re-visiting
    the focused session is a no-op.
    """

    def __init__(self):
        self._visits: list[str] = []
        self._cursor = -1

    def visit(self, session_id: str) -> None:
        del self._visits[self._cursor + 1:]
        self._visits.append(session_id)
        self._cursor = len(self._visits) - 1

    def back(self) -> str | None:
        if not self.can_back:
            return None
        self._cursor -= 1
        return self._visits[self._cursor]

    def forward(self) -> str | None:
        if not self.can_forward:
            return None
        self._cursor += 1
        return self._visits[self._cursor]

    @property
    def can_back(self) -> bool:
        return self._cursor > 0

    @property
    def can_forward(self) -> bool:
        return self._cursor < len(self._visits) - 1

    @property
    def current(self) -> str | None:
        return self._visits[self._cursor] if self._cursor >= 0 else None

    @property
    def visits(self) -> list[str]:
        return list(self._visits)

    def forget(self, session_id: str) -> None:
        """Drop every visit of a deleted session, keeping the cursor on a valid entry."""
        if session_id not in self._visits:
            return
        current = self.current
        kept_before_cursor = sum(
            1 for i, visited in enumerate(self._visits) if i <= self._cursor and visited != session_id
        )
        self._visits = [visited for visited in self._visits if visited != session_id]
        self._cursor = kept_before_cursor - 1
        if self._cursor < 0 and self._visits:
            self._cursor = 0
        logger.debug(f"Forgot session {session_id} (was current: {current == session_id})")
