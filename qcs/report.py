#!/usr/bin/env python3
"""
report.py

Crash report object: load, parse and symbolicate an Apple crash report.

Workflow of symbolicate_as_lines():
  1) Build the binary image lookup table from "Binary Images".
  2) Collect the addresses to symbolicate:
       - every address of a non-symbolicated "Last Exception Backtrace"
       - the address of every stack frame of every thread
  3) Symbolicate them in one pass (one atos run per binary image).
  4) Mark the text to replace:
       - the whole "(0x... 0x...)" line becomes one frame line per address
       - for thread frames, "function + offset (file:line)" becomes the
         resolved symbol; frames without a symbol are left alone
  5) Apply the marks to the original lines.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

from qcs.atos_runner import run_atos
from qcs.content import (
    BinaryImageEntry,
    CrashReportContent,
    NonSymbolicatedBacktrace,
    SymbolicatedBacktrace,
)
from qcs.errors import FileLoadError, FormatError
from qcs.image_finder import BinaryImageEntryFinder
from qcs.parser import parse_lines
from qcs.position import Position
from qcs.positions import CrashReportPositions
from qcs.resolver import BinaryImageFileProvider
from qcs.symbolizer import (
    AddressTarget,
    FinderBinaryImageInfoProvider,
    SymbolResolver,
    Symbolicator,
)
from qcs.text_rewriter import TextRewriter, split_lines
from qcs.utils import fixed_width, parse_address


LOG = logging.getLogger("report")

UNKNOWN_LOCATION = "0x00000000 + 0"


class CrashReport:
    def __init__(self, lines: Sequence[str]) -> None:
        self._lines: List[str] = list(lines)
        self.content: CrashReportContent
        self.positions: CrashReportPositions
        self.content, self.positions = parse_lines(self._lines)

    # -- loading ---------------------------------------------------------------

    @classmethod
    def from_lines(cls, lines: Sequence[str]) -> "CrashReport":
        return cls(lines)

    @classmethod
    def from_text(cls, text: str) -> "CrashReport":
        return cls(split_lines(text))

    @classmethod
    def from_data(cls, data: bytes) -> "CrashReport":
        """Raises FormatError if data is not UTF-8."""
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FormatError(str(e)) from e
        return cls.from_text(text)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "CrashReport":
        """Raises FileLoadError if the file cannot be read."""
        path = Path(path)
        LOG.info("Loading crash report: %s", path)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise FileLoadError(path, e) from e
        return cls.from_data(data)

    @property
    def lines(self) -> List[str]:
        return list(self._lines)

    # -- queries ---------------------------------------------------------------

    def _all_addresses(self) -> List[str]:
        addresses: List[str] = []
        backtrace = self.content.exception_backtrace
        if isinstance(backtrace, NonSymbolicatedBacktrace):
            addresses.extend(backtrace.addresses)
        elif isinstance(backtrace, SymbolicatedBacktrace):
            addresses.extend(f.address for f in backtrace.stack_frames)
        for thread in self.content.backtraces:
            addresses.extend(f.address for f in thread.stack_frames)
        return addresses

    def referenced_binary_images(self) -> List[BinaryImageEntry]:
        """
        Binary images owning at least one address of the report, in the
        order of the "Binary Images" section.
        """
        finder = BinaryImageEntryFinder(self.content.binary_images)
        used = set()
        for address in self._all_addresses():
            entry = finder.find(address)
            if entry is not None:
                used.add(entry)
        return [e for e in self.content.binary_images if e in used]

    # -- symbolication -----------------------------------------------------------

    def symbolicate_as_lines(
        self,
        file_provider: BinaryImageFileProvider,
        resolve: SymbolResolver = run_atos,
    ) -> List[str]:
        """
        Symbolicate the report and return its lines.

        Raises:
            InvalidAddress if "Binary Images" contains an unparsable address.
            ExternalCommandFailed if the symbol resolution service fails.
        """
        finder = BinaryImageEntryFinder(self.content.binary_images)
        symbolicator = Symbolicator(
            FinderBinaryImageInfoProvider(finder, file_provider),
            resolve=resolve,
        )
        rewriter = TextRewriter(self._lines)

        exception_addresses: List[str] = []
        backtrace = self.content.exception_backtrace
        if isinstance(backtrace, NonSymbolicatedBacktrace):
            exception_addresses = list(backtrace.addresses)

        frame_spans: List[Position] = []
        targets = [AddressTarget(a) for a in exception_addresses]
        for thread, thread_positions in zip(self.content.backtraces, self.positions.backtraces):
            for frame, frame_positions in zip(thread.stack_frames, thread_positions.stack_frames):
                targets.append(AddressTarget(frame.address))
                frame_spans.append(frame_positions.symbol)

        LOG.info(
            "Symbolicating %d exception addresses and %d stack frames",
            len(exception_addresses),
            len(frame_spans),
        )
        symbols = symbolicator.symbolicate(targets)
        exception_symbols = symbols[:len(exception_addresses)]
        frame_symbols = symbols[len(exception_addresses):]

        if exception_addresses and self.positions.exception_backtrace is not None:
            new_lines = [
                format_exception_frame(index, address, symbol, finder.find(address))
                for index, (address, symbol) in enumerate(zip(exception_addresses, exception_symbols))
            ]
            rewriter.add_mark(self.positions.exception_backtrace, new_lines)

        resolved = 0
        for span, symbol in zip(frame_spans, frame_symbols):
            if symbol is not None:
                rewriter.add_text_mark(span, symbol)
                resolved += 1
        LOG.info("Resolved %d of %d stack frames", resolved, len(frame_spans))

        return rewriter.rewrite()

    def symbolicate_as_text(
        self,
        file_provider: BinaryImageFileProvider,
        resolve: SymbolResolver = run_atos,
    ) -> str:
        return "\n".join(self.symbolicate_as_lines(file_provider, resolve=resolve))

    def symbolicate_as_data(
        self,
        file_provider: BinaryImageFileProvider,
        resolve: SymbolResolver = run_atos,
    ) -> bytes:
        return self.symbolicate_as_text(file_provider, resolve=resolve).encode("utf-8")

    def symbolicate_as_file(
        self,
        file_provider: BinaryImageFileProvider,
        out_file: Union[str, Path],
        resolve: SymbolResolver = run_atos,
    ) -> None:
        data = self.symbolicate_as_data(file_provider, resolve=resolve)
        out_file = Path(out_file)
        out_file.parent.mkdir(parents=True, exist_ok=True)
        out_file.write_bytes(data)
        LOG.info("Symbolicated report written to: %s", out_file)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def describe_unresolved(address: str, image: Optional[BinaryImageEntry]) -> str:
    """
    "<load address> + <decimal offset>" for an address inside a known
    image, or a placeholder when the image is unknown.
    """
    if image is None:
        return UNKNOWN_LOCATION
    offset = parse_address(address) - parse_address(image.load_address)
    return f"{image.load_address} + {offset}"


def format_exception_frame(
    index: int,
    address: str,
    symbol: Optional[str],
    image: Optional[BinaryImageEntry],
) -> str:
    """
    Build a frame line for one "Last Exception Backtrace" address:

        "0   CoreFoundation                \t0x1804f69a8 __exceptionPreprocess + 164"
    """
    description = symbol if symbol is not None else describe_unresolved(address, image)
    binary_name = image.binary_name if image is not None else ""
    return f"{fixed_width(str(index), 3)} {fixed_width(binary_name, 30)}\t{address} {description}"


__all__ = [
    "UNKNOWN_LOCATION",
    "CrashReport",
    "describe_unresolved",
    "format_exception_frame",
]
