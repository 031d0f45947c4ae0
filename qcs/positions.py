#!/usr/bin/env python3
"""
positions.py

Source spans of the values held in CrashReportContent.

The structure mirrors the document model for the parts that take part
in rewriting: every stack frame of every thread backtrace, and the
exception backtrace as a whole. Header and exception information values
are kept in plain dicts keyed by the CrashReportContent field name.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from qcs.position import Position


@dataclass(frozen=True)
class StackFramePositions:
    number: Position
    binary_name: Position
    address: Position
    function_name: Position
    offset: Position
    # Point at the end of the line when the frame has no source location.
    source_name: Position
    source_line: Position

    @property
    def symbol(self) -> Position:
        """
        Span from the function name to the end of the source location,
        including the ")" closing "(file:line)".
        """
        if self.source_line.is_point:
            return self.function_name.span_to(self.source_line)
        return Position(
            self.function_name.start_line,
            self.function_name.start_column,
            self.source_line.end_line,
            self.source_line.end_column + 1,
        )


@dataclass
class ThreadBacktracePositions:
    stack_frames: List[StackFramePositions] = field(default_factory=list)


@dataclass
class CrashReportPositions:
    header: Dict[str, Position] = field(default_factory=dict)
    exception_information: Dict[str, Position] = field(default_factory=dict)
    exception_backtrace: Optional[Position] = None
    backtraces: List[ThreadBacktracePositions] = field(default_factory=list)


__all__ = [
    "StackFramePositions",
    "ThreadBacktracePositions",
    "CrashReportPositions",
]
