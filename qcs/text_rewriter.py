#!/usr/bin/env python3
"""
text_rewriter.py

Rewrite parts of the original crash report text in place.

High-level behavior:

  - The rewriter holds the original lines (without line terminators).
  - Callers add "marks": a Position in the original text plus the lines
    that should replace it. Marks must not overlap; an overlapping mark is
    rejected with OverlappingPosition and the rewriter stays unchanged.
  - rewrite() applies all marks from the last one to the first one, so the
    coordinates of marks not yet applied are still valid, and returns the
    new list of lines. Everything outside the marks is kept as-is.

Replacement line counts:
  - []            : the span is deleted
  - ["text"]      : the span is replaced within the surrounding lines
  - ["a", ..., "z"]: the first line continues the text before the span,
                    the last line is followed by the text after the span
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence

from qcs.errors import OverlappingPosition
from qcs.position import Position
from qcs.utils import binary_search


LOG = logging.getLogger("text_rewriter")


@dataclass(frozen=True)
class Mark:
    position: Position
    new_text_lines: List[str]


def split_lines(text: str) -> List[str]:
    """Split text into lines, dropping '\\r' and keeping empty pieces."""
    return text.replace("\r", "").split("\n")


class TextRewriter:
    def __init__(self, lines: Sequence[str]) -> None:
        self._lines: List[str] = list(lines)
        # Sorted in ascending order by start position.
        self._marks: List[Mark] = []

    @property
    def lines(self) -> List[str]:
        return list(self._lines)

    @property
    def marks(self) -> List[Mark]:
        return list(self._marks)

    def add_text_mark(self, position: Position, new_text: str) -> None:
        """Add a mark whose replacement is given as (possibly multi-line) text."""
        self.add_mark(position, split_lines(new_text))

    def add_mark(self, position: Position, new_text_lines: Sequence[str]) -> None:
        """
        Add a rewriting mark.

        Raises:
            OverlappingPosition if the position intersects an existing mark.
        """
        start = position.start

        def judge(i: int) -> int:
            mark_start = self._marks[i].position.start
            if mark_start < start:
                return -1
            if mark_start > start:
                return 1
            return 0

        _, index = binary_search(0, len(self._marks), judge)

        # The previous mark must end at or before our start.
        if index > 0 and self._marks[index - 1].position.end > start:
            raise OverlappingPosition(position)

        # The next mark must start at or after our end.
        if index < len(self._marks) and self._marks[index].position.start < position.end:
            raise OverlappingPosition(position)

        self._marks.insert(index, Mark(position, list(new_text_lines)))

    def rewrite(self) -> List[str]:
        """Return the rewritten lines. The marks are left untouched."""
        lines = list(self._lines)
        for mark in reversed(self._marks):
            if mark.position.is_single_line:
                _apply_single_line(lines, mark)
            else:
                _apply_multi_line(lines, mark)
        LOG.debug("Applied %d marks to %d lines", len(self._marks), len(self._lines))
        return lines


# ---------------------------------------------------------------------------
# Mark application
# ---------------------------------------------------------------------------

def _apply_single_line(lines: List[str], mark: Mark) -> None:
    pos = mark.position
    new = mark.new_text_lines
    line = lines[pos.start_line]
    head = line[:pos.start_column]
    tail = line[pos.end_column:]

    if not new:
        lines[pos.start_line] = head + tail
    elif len(new) == 1:
        lines[pos.start_line] = head + new[0] + tail
    else:
        lines[pos.start_line : pos.start_line + 1] = (
            [head + new[0]] + new[1:-1] + [new[-1] + tail]
        )


def _apply_multi_line(lines: List[str], mark: Mark) -> None:
    pos = mark.position
    new = mark.new_text_lines
    head = lines[pos.start_line][:pos.start_column]
    tail = lines[pos.end_line][pos.end_column:]

    if not new:
        # Collapse start..end into one line.
        lines[pos.start_line : pos.end_line + 1] = [head + tail]
    elif len(new) == 1:
        # The end line keeps only the tail; it is dropped when that leaves
        # it empty, unless the span ended at column 0.
        if pos.end_column != 0 and not tail:
            end_lines: List[str] = []
        else:
            end_lines = [tail]
        lines[pos.start_line : pos.end_line + 1] = [head + new[0]] + end_lines
    else:
        lines[pos.start_line : pos.end_line + 1] = (
            [head + new[0]] + new[1:-1] + [new[-1] + tail]
        )


__all__ = [
    "Mark",
    "split_lines",
    "TextRewriter",
]
