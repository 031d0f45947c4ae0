#!/usr/bin/env python3
"""
content.py

Document model of an Apple crash report.

The parser fills these records from the report text. Only the parts
needed for symbolication are modeled in detail:

  - Header / ExceptionInformation: "Key: Value" lines (all optional)
  - ExceptionBacktrace: "Last Exception Backtrace", either already
    symbolicated by Apple (stack frames) or a list of raw addresses
  - ThreadBacktrace: one per "Thread N" block
  - BinaryImageEntry: one per row of "Binary Images"

Records are treated as read-only once parsing is finished.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Union


@dataclass
class Header:
    """Environment the crash occurred in."""
    incident_identifier: Optional[str] = None
    crash_reporter_key: Optional[str] = None
    beta_identifier: Optional[str] = None
    hardware_model: Optional[str] = None
    process: Optional[str] = None
    path: Optional[str] = None
    identifier: Optional[str] = None
    version: Optional[str] = None
    app_store_tools: Optional[str] = None
    app_variant: Optional[str] = None
    code_type: Optional[str] = None
    role: Optional[str] = None
    parent_process: Optional[str] = None
    coalition: Optional[str] = None
    date_time: Optional[str] = None
    launch_time: Optional[str] = None
    os_version: Optional[str] = None


@dataclass
class ExceptionInformation:
    """How the process terminated."""
    exception_type: Optional[str] = None
    exception_codes: Optional[str] = None
    exception_subtype: Optional[str] = None
    exception_note: Optional[str] = None
    termination_reason: Optional[str] = None
    triggered_by_thread: Optional[str] = None
    crashed_thread: Optional[str] = None


@dataclass
class StackFrame:
    """
    Single frame line of a backtrace, e.g.:

        3   MyApp                         	0x0000000102a4c8f0 main + 96 (main.m:17)

    offset / source_name / source_line are None when the line lacks them.
    """
    number: str
    binary_name: str
    address: str
    function_name: str
    offset: Optional[str] = None
    source_name: Optional[str] = None
    source_line: Optional[str] = None


@dataclass
class SymbolicatedBacktrace:
    """Exception backtrace whose symbols were already resolved in the report."""
    stack_frames: List[StackFrame] = field(default_factory=list)


@dataclass
class NonSymbolicatedBacktrace:
    """Exception backtrace given as "(0x... 0x... ...)"."""
    addresses: List[str] = field(default_factory=list)


ExceptionBacktrace = Union[SymbolicatedBacktrace, NonSymbolicatedBacktrace]


@dataclass
class ThreadBacktrace:
    thread_number: str
    thread_name: Optional[str] = None
    is_crashed: bool = False
    stack_frames: List[StackFrame] = field(default_factory=list)


@dataclass(frozen=True)
class BinaryImageEntry:
    """
    One row of the "Binary Images" section:

        0x102a44000 - 0x102a4ffff MyApp arm64  <5e2d...0c1f> /var/.../MyApp

    Addresses are kept as the hex strings found in the report.
    """
    load_address: str
    end_address: str
    binary_name: str
    architecture: str
    build_uuid: str
    binary_path: str


@dataclass
class CrashReportContent:
    header: Header = field(default_factory=Header)
    exception_information: ExceptionInformation = field(default_factory=ExceptionInformation)
    exception_backtrace: Optional[ExceptionBacktrace] = None
    backtraces: List[ThreadBacktrace] = field(default_factory=list)
    binary_images: List[BinaryImageEntry] = field(default_factory=list)


__all__ = [
    "Header",
    "ExceptionInformation",
    "StackFrame",
    "SymbolicatedBacktrace",
    "NonSymbolicatedBacktrace",
    "ExceptionBacktrace",
    "ThreadBacktrace",
    "BinaryImageEntry",
    "CrashReportContent",
]
