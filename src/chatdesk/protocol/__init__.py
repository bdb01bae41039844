"""
Inline command protocol: parsing directives out of model text and applying them.
"""

from .applier import DirectiveApplier
from .parser import CommandParser, ParseResult, TagToken, TextToken, strip_tags, tokenize

__all__ = [
    "CommandParser",
    "DirectiveApplier",
    "ParseResult",
    "TagToken",
    "TextToken",
    "strip_tags",
    "tokenize",
]
