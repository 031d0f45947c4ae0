#!/usr/bin/env python3
"""
errors.py

Exceptions raised by QCS.

All of them derive from QCSError so that the CLI can report any failure
with a single except clause. Parsing itself never raises; these are
raised while loading input, building the binary image lookup table,
running external tools, or adding rewrite marks.
"""

from __future__ import annotations

from pathlib import Path
from typing import Union


class QCSError(Exception):
    """Base class of every error raised by QCS."""


class FormatError(QCSError):
    """Input bytes could not be decoded as crash report text."""

    def __init__(self, message: str = "input is not valid UTF-8 text") -> None:
        super().__init__(message)

    def __str__(self) -> str:
        return f"Invalid crash report: {self.args[0]}"


class FileLoadError(QCSError):
    """
    Reading a crash report file failed.

    location: path of the file
    cause:    the underlying OSError
    """

    def __init__(self, location: Union[str, Path], cause: BaseException) -> None:
        super().__init__(location, cause)
        self.location = Path(location)
        self.cause = cause

    def __str__(self) -> str:
        return f"Failed to load file: {self.location} ({self.cause})"


class InvalidAddress(QCSError):
    """A mandatory hexadecimal address could not be parsed."""

    def __init__(self, text: str) -> None:
        super().__init__(text)
        self.text = text

    def __str__(self) -> str:
        return f"Invalid address found: {self.text!r}"


class ExternalCommandFailed(QCSError):
    """
    An external tool (atos, otool) could not be run or exited non-zero.

    command: short name of the tool
    message: stderr output or the reason it could not be started
    """

    def __init__(self, command: str, message: str) -> None:
        super().__init__(command, message)
        self.command = command
        self.message = message

    def __str__(self) -> str:
        return f"Error in executing {self.command}: {self.message}"


class OverlappingPosition(QCSError):
    """A rewrite mark intersects a mark that was added before."""

    def __init__(self, position: object = None) -> None:
        super().__init__(position)
        self.position = position

    def __str__(self) -> str:
        if self.position is None:
            return "There are overlapped marked positions"
        return f"Marked position {self.position} overlaps an existing mark"


__all__ = [
    "QCSError",
    "FormatError",
    "FileLoadError",
    "InvalidAddress",
    "ExternalCommandFailed",
    "OverlappingPosition",
]
