"""
Application of parsed directives to session state.
"""

import logging
from collections.abc import Iterable

from ..core.models import Directive, DirectiveKind, Label, Session, SessionStatus, Subtask
from .parser import find_label

logger = logging.getLogger(__name__)


class DirectiveApplier:
    """
    Applies directives to a session and the workspace label catalog.

    Application is idempotent: re-applying a directive whose effect is
    already present leaves the state unchanged.
    """

    def apply(
        self, session: Session, directives: Iterable[Directive], labels: list[Label]
    ) -> list[DirectiveKind]:
        """
        Apply ``directives`` in order.

        Args:
            session: Session to mutate
            directives: Output of CommandParser.process
            labels: Workspace label catalog; synthesized labels are appended

        Returns:
            Kinds of the directives that changed something
        """
        changed = []
        for directive in directives:
            if self._apply_one(session, directive, labels):
                changed.append(directive.kind)

        if changed:
            session.touch()
            logger.info(
                f"Applied directives to session {session.id}: "
                f"{', '.join(kind.value for kind in changed)}"
            )
        return changed

    def _apply_one(self, session: Session, directive: Directive, labels: list[Label]) -> bool:
        kind = directive.kind

        if kind == DirectiveKind.RETITLE:
            if session.title == directive.value:
                return False
            session.title = directive.value
            return True

        if kind == DirectiveKind.SET_STATUS:
            status = SessionStatus.parse(directive.value)
            if status is None or session.status == status:
                return False
            session.status = status
            return True

        if kind == DirectiveKind.ADD_LABEL:
            label = find_label(labels, directive.value)
            if label is None:
                label = directive.new_label or Label(name=directive.value)
                labels.append(label)
                logger.debug(f"Created label {label.name!r} ({label.id})")
            if label.id in session.label_ids:
                return False
            session.label_ids.append(label.id)
            return True

        if kind == DirectiveKind.ADD_TASK:
            wanted = directive.value.casefold()
            if any(t.text.casefold() == wanted and not t.completed for t in session.tasks):
                return False
            session.tasks.append(Subtask(text=directive.value))
            return True

        task = next((t for t in session.tasks if t.id == directive.target_id), None)
        if task is None:
            logger.debug(f"No task matches {directive.value!r}; skipping {kind.value}")
            return False

        if kind == DirectiveKind.COMPLETE_TASK:
            if task.completed:
                return False
            task.completed = True
            return True

        if kind == DirectiveKind.REMOVE_TASK:
            session.tasks.remove(task)
            return True

        return False
