"""
Parser for the inline command protocol carried in model text.

Models can embed ``[[KEYWORD: payload]]`` tags anywhere in a reply to
retitle the session, change its status, label it or manage its subtasks.
The parser splits the text into text and tag tokens, keeps the first tag
of every kind, resolves label and task references against the session's
current state and returns the visible text with every tag removed. It
never mutates anything; see ``applier`` for the application step.
"""

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from ..core.models import (
    DEFAULT_LABEL_COLOR,
    Directive,
    DirectiveKind,
    Label,
    SessionStatus,
    Subtask,
)

logger = logging.getLogger(__name__)

KEYWORDS: dict[str, DirectiveKind] = {
    "TITLE": DirectiveKind.RETITLE,
    "STATUS": DirectiveKind.SET_STATUS,
    "LABEL": DirectiveKind.ADD_LABEL,
    "ADD_TASK": DirectiveKind.ADD_TASK,
    "DONE_TASK": DirectiveKind.COMPLETE_TASK,
    "REMOVE_TASK": DirectiveKind.REMOVE_TASK,
}

_KEYWORD_ALTERNATION = "|".join(sorted(KEYWORDS, key=len, reverse=True))
_TAG = rf"\[\[\s*({_KEYWORD_ALTERNATION})\s*:(.*?)\]\]"

TAG_PATTERN = re.compile(_TAG, re.IGNORECASE | re.DOTALL)
# a run of tags plus the horizontal whitespace around and between them
_TAG_RUN_PATTERN = re.compile(
    rf"[ \t]*{_TAG}(?:[ \t]*{_TAG})*[ \t]*", re.IGNORECASE | re.DOTALL
)


@dataclass(frozen=True)
class TextToken:
    """Visible text between tags."""
    text: str


@dataclass(frozen=True)
class TagToken:
    """One ``[[KEYWORD: payload]]`` occurrence."""
    kind: DirectiveKind
    payload: str
    raw: str


Token = TextToken | TagToken


@dataclass
class ParseResult:
    """Visible text plus the directives found in it."""

    cleaned_text: str
    """Input with every tag removed and surrounding whitespace trimmed"""

    directives: list[Directive] = field(default_factory=list)
    """At most one directive per kind, from the first tag of that kind"""


def tokenize(raw_text: str) -> list[Token]:
    """Split text into text and tag tokens, in order."""
    tokens: list[Token] = []
    position = 0
    for match in TAG_PATTERN.finditer(raw_text):
        if match.start() > position:
            tokens.append(TextToken(raw_text[position:match.start()]))
        tokens.append(
            TagToken(
                kind=KEYWORDS[match.group(1).upper()],
                payload=match.group(2).strip(),
                raw=match.group(0),
            )
        )
        position = match.end()
    if position < len(raw_text):
        tokens.append(TextToken(raw_text[position:]))
    return tokens


def strip_tags(raw_text: str) -> str:
    """Remove every tag; a run of tags inside a line collapses to one space."""

    def replace(match: re.Match) -> str:
        before = match.string[:match.start()]
        after = match.string[match.end():]
        if not before or before.endswith("\n") or not after or after.startswith("\n"):
            return ""
        return " "

    text = raw_text
    while True:
        # removal can splice brackets into a new tag, e.g. "[[[[TITLE: a]]TITLE: b]]"
        stripped = _TAG_RUN_PATTERN.sub(replace, text)
        if stripped == text:
            return stripped.strip()
        text = stripped


class CommandParser:
    """
    Extracts directives from model text.

    Only the first tag of each kind is considered; later tags of the same
    kind are removed from the visible text but otherwise ignored. A first
    tag with an unusable payload (unknown status, empty text) yields no
    directive.
    """

    def __init__(self, default_label_color: str = DEFAULT_LABEL_COLOR):
        self.default_label_color = default_label_color

    def process(
        self,
        raw_text: str,
        labels: Sequence[Label] = (),
        tasks: Sequence[Subtask] = (),
    ) -> ParseResult:
        """
        Parse ``raw_text`` against the current labels and tasks.

        Args:
            raw_text: Model output, complete or partial
            labels: Existing labels, for case-insensitive name matching
            tasks: The session's subtasks, for substring matching

        Returns:
            ParseResult with cleaned text and resolved directives
        """
        first_tags: dict[DirectiveKind, TagToken] = {}
        for token in tokenize(raw_text):
            if isinstance(token, TagToken):
                if token.kind in first_tags:
                    logger.debug(f"Ignoring duplicate {token.kind.value} tag: {token.raw!r}")
                    continue
                first_tags[token.kind] = token

        directives = []
        for kind, tag in first_tags.items():
            directive = self._resolve(tag, labels, tasks)
            if directive is not None:
                directives.append(directive)

        return ParseResult(cleaned_text=strip_tags(raw_text), directives=directives)

    def _resolve(
        self, tag: TagToken, labels: Sequence[Label], tasks: Sequence[Subtask]
    ) -> Directive | None:
        payload = tag.payload
        if not payload:
            logger.debug(f"Ignoring {tag.kind.value} tag with empty payload")
            return None

        if tag.kind == DirectiveKind.SET_STATUS:
            status = SessionStatus.parse(payload)
            if status is None:
                logger.debug(f"Ignoring unknown status {payload!r}")
                return None
            return Directive(kind=tag.kind, value=status.value)

        if tag.kind == DirectiveKind.ADD_LABEL:
            existing = find_label(labels, payload)
            if existing is not None:
                return Directive(kind=tag.kind, value=existing.name, target_id=existing.id)
            new_label = Label(name=payload, color=self.default_label_color)
            return Directive(
                kind=tag.kind, value=new_label.name, target_id=new_label.id, new_label=new_label
            )

        if tag.kind in (DirectiveKind.COMPLETE_TASK, DirectiveKind.REMOVE_TASK):
            task = find_task(tasks, payload)
            return Directive(
                kind=tag.kind, value=payload, target_id=task.id if task else None
            )

        return Directive(kind=tag.kind, value=payload)


def find_label(labels: Sequence[Label], name: str) -> Label | None:
    """Case-insensitive exact name match."""
    wanted = name.strip().casefold()
    for label in labels:
        if label.name.casefold() == wanted:
            return label
    return None


def find_task(tasks: Sequence[Subtask], reference: str) -> Subtask | None:
    """First task whose text contains ``reference``, case-insensitively."""
    wanted = reference.strip().casefold()
    for task in tasks:
        if wanted in task.text.casefold():
            return task
    return None
