#!/usr/bin/env python3
"""
parser.py

Crash report parser for QCS.

Responsibilities:
  - Walk the lines of an Apple crash report section by section:
        header -> exception information -> exception backtrace
               -> thread backtraces -> crashed thread state -> binary images
  - Build a CrashReportContent and, alongside it, a CrashReportPositions
    holding the (line, column) span of every extracted value, so that the
    rewriter can later replace exactly those characters.

Notes:
  - Sections only move forward. A transition is triggered by the line
    being looked at, and that same line is then handled again by the new
    section (e.g. "Exception Type: ..." ends the header and is stored as
    exception information).
  - Nothing here raises. Lines that do not fit the current section are
    dropped, so that reports with slightly different layouts still parse.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from qcs.content import (
    BinaryImageEntry,
    CrashReportContent,
    NonSymbolicatedBacktrace,
    StackFrame,
    SymbolicatedBacktrace,
    ThreadBacktrace,
)
from qcs.position import Position
from qcs.positions import (
    CrashReportPositions,
    StackFramePositions,
    ThreadBacktracePositions,
)


LOG = logging.getLogger("parser")


class Section(Enum):
    HEADER = "header"
    EXCEPTION_INFORMATION = "exception information"
    EXCEPTION_BACKTRACE = "exception backtrace"
    BACKTRACE = "backtrace"
    CRASHED_THREAD_STATE = "crashed thread state"
    BINARY_IMAGES = "binary images"


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------

# Report key -> Header field name
HEADER_KEYS: Dict[str, str] = {
    "Incident Identifier": "incident_identifier",
    "CrashReporter Key": "crash_reporter_key",
    "Beta Identifier": "beta_identifier",
    "Hardware Model": "hardware_model",
    "Process": "process",
    "Path": "path",
    "Identifier": "identifier",
    "Version": "version",
    "AppStoreTools": "app_store_tools",
    "AppVariant": "app_variant",
    "Code Type": "code_type",
    "Role": "role",
    "Parent Process": "parent_process",
    "Coalition": "coalition",
    "Date/Time": "date_time",
    "Launch Time": "launch_time",
    "OS Version": "os_version",
}

# Report key -> ExceptionInformation field name
EXCEPTION_INFORMATION_KEYS: Dict[str, str] = {
    "Exception Type": "exception_type",
    "Exception Codes": "exception_codes",
    "Exception Subtype": "exception_subtype",
    "Exception Note": "exception_note",
    "Termination Reason": "termination_reason",
    "Triggered by Thread": "triggered_by_thread",
    "Crashed Thread": "crashed_thread",
}

LAST_EXCEPTION_BACKTRACE_KEY = "Last Exception Backtrace"
BINARY_IMAGES_KEY = "Binary Images"


# ---------------------------------------------------------------------------
# Regexes
# ---------------------------------------------------------------------------

# "(0x1a2b3c 0x4d5e6f ...)" on the "Last Exception Backtrace" line
ADDRESS_LIST_RE = re.compile(r"\(\s*(0x[0-9a-fA-F]+(?:\s+0x[0-9a-fA-F]+)*)\s*\)")

# Any line opening a thread block: "Thread 0:", "Thread 3 name: ...", "Thread 1 Crashed:"
THREAD_BACKTRACE_RE = re.compile(r"^Thread [0-9]+[\s:]")

# "Thread 0 name:  Dispatch queue: com.apple.main-thread"
THREAD_NAME_RE = re.compile(r"^Thread [0-9]+ name:\s*(.*)")

# "Thread 0 Crashed:" / "Thread 4:"
THREAD_START_RE = re.compile(r"^Thread ([0-9]+)(\s+Crashed)?:")

# "Thread 0 crashed with ARM Thread State (64-bit):"
CRASHED_THREAD_STATE_RE = re.compile(r"^Thread [0-9]+ crashed with .*Thread State.*")

# Frame line:
#   "3   MyApp                         \t0x0000000102a4c8f0 main + 96 (main.m:17)"
# Binary name and address are separated by a tab.
FRAME_LINE_RE = re.compile(
    r"""
    ([0-9]+)            # frame number
    \s+
    (.+\S)              # binary name (may contain spaces)
    \s*\t
    (0x[0-9a-f]+)       # address
    \s+
    (.*)                # the rest: symbol part
    """,
    re.VERBOSE,
)

# Symbol part of a frame line:
#   "main + 96 (main.m:17)"
#   "0x102a44000 + 35056"
FRAME_SYMBOL_RE = re.compile(
    r"""
    (.+)\ \+\ ([0-9]+)                  # function + offset
    (?:\s+\((.+):([0-9]+)\))?           # optional (file:line)
    """,
    re.VERBOSE,
)

# Binary image row:
#   "0x102a44000 - 0x102a4ffff MyApp arm64  <5e2d...0c1f> /var/containers/.../MyApp"
BINARY_IMAGE_RE = re.compile(
    r"""
    (0x[0-9a-f]+)\s+-\s+(0x[0-9a-f]+)   # load - end
    \s+(\S.*)                           # binary name (may contain spaces)
    \s+(\S+)                            # architecture
    \s+<([0-9a-fA-F]+)>                 # build UUID
    \s+(\S.*)                           # path
    """,
    re.VERBOSE,
)


# ---------------------------------------------------------------------------
# Line helpers
# ---------------------------------------------------------------------------

def parse_key_value_line(line: str, line_index: int) -> Optional[Tuple[str, str, Position]]:
    """
    Split "Key:   Value" at the first colon.

    Returns (key, value, value_position) with key and value stripped, or
    None when the line has no colon. An empty value is located at the end
    of the line.
    """
    colon = line.find(":")
    if colon < 0:
        return None

    key = line[:colon].strip()
    rest = line[colon + 1:]
    value = rest.strip()
    if not value:
        return key, "", Position.point(line_index, len(line))

    start = colon + 1 + (len(rest) - len(rest.lstrip()))
    end = start + len(value)
    return key, value, Position.on_line(line_index, start, end)


def parse_stack_frame_line(
    line: str,
    line_index: int,
) -> Optional[Tuple[StackFrame, StackFramePositions]]:
    """
    Try to parse a single line as a stack frame.

    Returns the frame and the spans of its parts, or None when the line is
    not a frame line. Spans of the symbol part are made relative to the
    whole line, not to the symbol substring.
    """
    m = FRAME_LINE_RE.search(line)
    if not m:
        return None

    rest_start = m.start(4)
    m2 = FRAME_SYMBOL_RE.search(m.group(4))
    if not m2:
        return None

    def span(match: "re.Match[str]", group: int, base: int = 0) -> Position:
        return Position.on_line(line_index, match.start(group) + base, match.end(group) + base)

    eol = Position.point(line_index, len(line))
    has_source = m2.group(3) is not None

    frame = StackFrame(
        number=m.group(1),
        binary_name=m.group(2),
        address=m.group(3),
        function_name=m2.group(1),
        offset=m2.group(2),
        source_name=m2.group(3),
        source_line=m2.group(4),
    )
    positions = StackFramePositions(
        number=span(m, 1),
        binary_name=span(m, 2),
        address=span(m, 3),
        function_name=span(m2, 1, rest_start),
        offset=span(m2, 2, rest_start),
        source_name=span(m2, 3, rest_start) if has_source else eol,
        source_line=span(m2, 4, rest_start) if has_source else eol,
    )
    return frame, positions


def parse_binary_image_line(line: str) -> Optional[BinaryImageEntry]:
    m = BINARY_IMAGE_RE.search(line)
    if not m:
        return None
    return BinaryImageEntry(
        load_address=m.group(1),
        end_address=m.group(2),
        binary_name=m.group(3),
        architecture=m.group(4),
        build_uuid=m.group(5),
        binary_path=m.group(6),
    )


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class CrashReportParser:
    """
    Section-by-section parser.

    Each section handler looks at the current line, updates the model, and
    returns the section to move to (or None to stay). After a transition
    the same line is handed to the new section's handler, until a handler
    stays where it is.
    """

    def __init__(self) -> None:
        self._handlers: Dict[Section, Callable[[], Optional[Section]]] = {
            Section.HEADER: self._parse_header,
            Section.EXCEPTION_INFORMATION: self._parse_exception_information,
            Section.EXCEPTION_BACKTRACE: self._parse_exception_backtrace,
            Section.BACKTRACE: self._parse_backtrace,
            Section.CRASHED_THREAD_STATE: self._parse_crashed_thread_state,
            Section.BINARY_IMAGES: self._parse_binary_images,
        }
        self._reset()

    def _reset(self) -> None:
        self.section = Section.HEADER
        self._line = ""
        self._line_index = 0
        self._content = CrashReportContent()
        self._positions = CrashReportPositions()
        self._exception_frames: List[StackFrame] = []
        self._thread: Optional[ThreadBacktrace] = None
        self._thread_positions: Optional[ThreadBacktracePositions] = None
        self._thread_name: Optional[str] = None

    def parse(self, lines: Sequence[str]) -> Tuple[CrashReportContent, CrashReportPositions]:
        self._reset()
        for line_index, line in enumerate(lines):
            self._line_index = line_index
            self._line = line
            next_section = self._handlers[self.section]()
            while next_section is not None and next_section is not self.section:
                LOG.debug("line %d: %s -> %s", line_index, self.section.value, next_section.value)
                self._enter(next_section)
                next_section = self._handlers[self.section]()
        self._finish()

        LOG.info(
            "Parsed %d lines: %d thread backtraces, %d binary images",
            len(lines),
            len(self._content.backtraces),
            len(self._content.binary_images),
        )
        return self._content, self._positions

    def _finish(self) -> None:
        # Input may end in the middle of a section (truncated reports).
        if self.section is Section.EXCEPTION_BACKTRACE and self._exception_frames:
            self._content.exception_backtrace = SymbolicatedBacktrace(self._exception_frames)
        elif self.section is Section.BACKTRACE:
            self._push_backtrace()

    def _enter(self, section: Section) -> None:
        self.section = section
        if section is Section.EXCEPTION_BACKTRACE:
            self._exception_frames = []
        elif section is Section.BACKTRACE:
            self._thread = None
            self._thread_positions = None
            self._thread_name = None

    # -- header / exception information ------------------------------------

    def _store(self, target: object, positions: Dict[str, Position],
               field_name: str, value: str, position: Position) -> None:
        setattr(target, field_name, value)
        positions[field_name] = position

    def _follow_up(self, key: str) -> Optional[Section]:
        if key == LAST_EXCEPTION_BACKTRACE_KEY:
            return Section.EXCEPTION_BACKTRACE
        if self._is_thread_backtrace():
            return Section.BACKTRACE
        return None

    def _parse_header(self) -> Optional[Section]:
        kv = parse_key_value_line(self._line, self._line_index)
        if kv is None:
            return None
        key, value, position = kv

        field_name = HEADER_KEYS.get(key)
        if field_name is not None:
            self._store(self._content.header, self._positions.header, field_name, value, position)
            return None
        if key in EXCEPTION_INFORMATION_KEYS:
            return Section.EXCEPTION_INFORMATION
        return self._follow_up(key)

    def _parse_exception_information(self) -> Optional[Section]:
        kv = parse_key_value_line(self._line, self._line_index)
        if kv is None:
            return None
        key, value, position = kv

        field_name = EXCEPTION_INFORMATION_KEYS.get(key)
        if field_name is not None:
            self._store(
                self._content.exception_information,
                self._positions.exception_information,
                field_name,
                value,
                position,
            )
            return None
        return self._follow_up(key)

    # -- exception backtrace -----------------------------------------------

    def _parse_exception_backtrace(self) -> Optional[Section]:
        line = self._line
        whole_line = Position.on_line(self._line_index, 0, len(line))

        m = ADDRESS_LIST_RE.search(line.strip())
        if m:
            self._content.exception_backtrace = NonSymbolicatedBacktrace(m.group(1).split())
            self._positions.exception_backtrace = whole_line
            return None

        parsed = parse_stack_frame_line(line, self._line_index)
        if parsed is not None:
            self._exception_frames.append(parsed[0])
            current = self._positions.exception_backtrace
            if current is None:
                self._positions.exception_backtrace = whole_line
            else:
                self._positions.exception_backtrace = current.span_to(whole_line)
            return None

        if self._is_thread_backtrace():
            if self._exception_frames:
                self._content.exception_backtrace = SymbolicatedBacktrace(self._exception_frames)
            return Section.BACKTRACE
        return None

    # -- thread backtraces ---------------------------------------------------

    def _is_thread_backtrace(self) -> bool:
        return THREAD_BACKTRACE_RE.match(self._line) is not None

    def _push_backtrace(self) -> None:
        if self._thread is not None:
            self._content.backtraces.append(self._thread)
        if self._thread_positions is not None:
            self._positions.backtraces.append(self._thread_positions)
        self._thread = None
        self._thread_positions = None

    def _parse_backtrace(self) -> Optional[Section]:
        line = self._line

        m = THREAD_NAME_RE.match(line)
        if m:
            self._push_backtrace()
            self._thread_name = m.group(1)
            return None

        m = THREAD_START_RE.match(line)
        if m:
            thread_name = self._thread_name
            self._thread_name = None
            self._push_backtrace()
            self._thread = ThreadBacktrace(
                thread_number=m.group(1),
                thread_name=thread_name,
                is_crashed=m.group(2) is not None,
            )
            self._thread_positions = ThreadBacktracePositions()
            return None

        parsed = parse_stack_frame_line(line, self._line_index)
        if parsed is not None:
            # Frames before the first "Thread N:" line have no owner.
            if self._thread is not None and self._thread_positions is not None:
                self._thread.stack_frames.append(parsed[0])
                self._thread_positions.stack_frames.append(parsed[1])
            return None

        if CRASHED_THREAD_STATE_RE.match(line):
            self._push_backtrace()
            return Section.CRASHED_THREAD_STATE

        if line.startswith(BINARY_IMAGES_KEY):
            self._push_backtrace()
            return Section.BINARY_IMAGES
        return None

    # -- crashed thread state / binary images --------------------------------

    def _parse_crashed_thread_state(self) -> Optional[Section]:
        if self._line.startswith(BINARY_IMAGES_KEY):
            return Section.BINARY_IMAGES
        return None

    def _parse_binary_images(self) -> Optional[Section]:
        entry = parse_binary_image_line(self._line)
        if entry is not None:
            self._content.binary_images.append(entry)
        return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_lines(lines: Sequence[str]) -> Tuple[CrashReportContent, CrashReportPositions]:
    """Parse crash report lines (without line terminators)."""
    return CrashReportParser().parse(lines)


__all__ = [
    "Section",
    "HEADER_KEYS",
    "EXCEPTION_INFORMATION_KEYS",
    "CrashReportParser",
    "parse_key_value_line",
    "parse_stack_frame_line",
    "parse_binary_image_line",
    "parse_lines",
]
