#!/usr/bin/env python3
"""
position.py

Text span inside a crash report.

A Position is the half-open range [start, end) over (line, column)
coordinates. Lines and columns are 0-based; end_column is exclusive.
A span may cover several lines, and a zero-length span ("point") is
used to mark an insertion location.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Position:
    start_line: int
    start_column: int
    end_line: int
    end_column: int

    @classmethod
    def on_line(cls, line: int, start_column: int, end_column: int) -> "Position":
        """Span located on a single line."""
        return cls(line, start_column, line, end_column)

    @classmethod
    def point(cls, line: int, column: int) -> "Position":
        """Span with no length."""
        return cls(line, column, line, column)

    @property
    def start(self) -> Tuple[int, int]:
        return (self.start_line, self.start_column)

    @property
    def end(self) -> Tuple[int, int]:
        return (self.end_line, self.end_column)

    @property
    def is_point(self) -> bool:
        return self.start == self.end

    @property
    def is_single_line(self) -> bool:
        return self.start_line == self.end_line

    def span_to(self, other: "Position") -> "Position":
        """Position from the start of self to the end of other."""
        return Position(self.start_line, self.start_column, other.end_line, other.end_column)

    def __str__(self) -> str:
        if self.start_line == self.end_line:
            if self.start_column == self.end_column:
                return f"{self.start_line}:{self.start_column}"
            return f"{self.start_line}:{self.start_column}-{self.end_column}"
        return f"{self.start_line}:{self.start_column}-{self.end_line}:{self.end_column}"


__all__ = [
    "Position",
]
