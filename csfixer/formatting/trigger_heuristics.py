"""Pure text heuristics behind the keystroke-driven partial formatting.

A fragment cut out of a live document is rarely valid PHP on its own. These
helpers decide where a fragment starts, wrap it in a synthetic prologue (and,
for a bare block, an ``if(1)`` guard) so php-cs-fixer accepts it, and strip
that scaffolding from whatever the fixer returns.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Callable

from csfixer.formatting.editor_host import TextRange


PROLOGUE = "<?php\n$__pcf__spliter=0;\n"
MIN_SEMICOLON_LINE_LENGTH = 5
MIN_BRACKET_JUMP = 3

CLOSING_BRACE_RE = re.compile(r"^\s*\}$")
BRACE_ONLY_RE = re.compile(r"^\s*\{\s*$")

_HEADER = (
    r"((if|for|foreach|while|switch|^\s*function\s+\w+|^\s*function\s*)\s*\(.+?\)"
    r"|(class|trait|interface)\s+[\w ]+|do|try)"
)
STATEMENT_HEADER_RE = re.compile(_HEADER + r"\s*$", re.IGNORECASE)
HEADER_WITH_BRACE_RE = re.compile(_HEADER + r"\s*\{\s*$", re.IGNORECASE)

_PROLOGUE_RE = re.compile(r"^<\?php[\s\S]+?\$__pcf__spliter\s*=\s*0;\r?\n")
_GUARD_RE = re.compile(
    r"^<\?php[\s\S]+?\$__pcf__spliter\s*=\s*0;\s+?if\s*\(\s*1\s*\)\s*(\{[\s\S]+?\})\s*$",
    re.IGNORECASE,
)
_INDENT_RE = re.compile(r"^(\s*)\S+")


class LineKind(enum.Enum):
    NO_MATCH = "no_match"
    HEADER = "header"
    BRACE_ONLY = "brace_only"


def classify_line(text: str) -> LineKind:
    if BRACE_ONLY_RE.search(text):
        return LineKind.BRACE_ONLY
    if HEADER_WITH_BRACE_RE.search(text):
        return LineKind.HEADER
    return LineKind.NO_MATCH


def is_statement_header(text: str) -> bool:
    return STATEMENT_HEADER_RE.search(text) is not None


def is_closing_brace_edit(inserted: str) -> bool:
    return CLOSING_BRACE_RE.match(inserted) is not None


def is_semicolon_edit(inserted: str) -> bool:
    return inserted == ";"


def is_bracket_jump_mismatch(original_offset: int, landing_offset: int, next_char: str) -> bool:
    return original_offset - landing_offset < MIN_BRACKET_JUMP or next_char != "{"


def strip_prologue(fixed: str) -> str:
    return _PROLOGUE_RE.sub("", fixed, count=1).rstrip()


def strip_guard(fixed: str) -> str | None:
    match = _GUARD_RE.match(fixed)
    if match is None:
        return None
    return match.group(1)


def leading_indent(text: str) -> str:
    match = _INDENT_RE.match(text)
    return match.group(1) if match else ""


@dataclass(slots=True, frozen=True)
class TriggerCandidate:
    range: TextRange
    wrapper: str
    fragment: str
    unwrap: Callable[[str], str | None]

    @property
    def source_text(self) -> str:
        return self.wrapper + self.fragment

    def replacement_for(self, formatted: str) -> str | None:
        """Text to put back into the document, or None when nothing should change."""
        fixed = self.unwrap(formatted)
        if fixed is None:
            return None
        if fixed == self.unwrap(self.source_text):
            return None
        return fixed


def guarded_wrapper(anchor_line_text: str) -> str:
    return PROLOGUE + leading_indent(anchor_line_text) + "if(1)"
