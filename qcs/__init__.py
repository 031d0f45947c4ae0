"""
QCS - Quick Crash Symbolicator.

Parses Apple crash reports, finds the binary image owning each address,
resolves symbols with atos, and rewrites the report text in place.
"""

from qcs.content import (
    BinaryImageEntry,
    CrashReportContent,
    ExceptionInformation,
    Header,
    NonSymbolicatedBacktrace,
    StackFrame,
    SymbolicatedBacktrace,
    ThreadBacktrace,
)
from qcs.errors import (
    ExternalCommandFailed,
    FileLoadError,
    FormatError,
    InvalidAddress,
    OverlappingPosition,
    QCSError,
)
from qcs.image_finder import BinaryImageEntryFinder
from qcs.parser import parse_lines
from qcs.position import Position
from qcs.report import CrashReport
from qcs.resolver import (
    BinaryImageFileProvider,
    BinaryImageFileProviderChain,
    DSYMBinaryImageFileProvider,
    SystemBinaryImageFileProvider,
)
from qcs.symbolizer import AddressTarget, BinaryImageInfo, Symbolicator
from qcs.text_rewriter import TextRewriter

__version__ = "0.1.0"
