#!/usr/bin/env python3
"""
resolver.py

Responsible for locating the symbol file of a binary image listed in a
crash report, based on:
  - the image's path as logged in "Binary Images"
  - its build UUID and architecture

Providers:
  - SystemBinaryImageFileProvider: Xcode "iOS DeviceSupport" style folders
    (<folder>/<binary path inside the device>)
  - DSYMBinaryImageFileProvider:   files inside a .dSYM bundle
  - BinaryImageFileProviderChain:  ordered list of providers, first hit wins

A candidate only matches when the UUID read from it (via otool) equals the
UUID in the report. Each provider keeps an in-memory cache keyed by
"<uuid>:<arch>" so that repeated lookups do not hit the filesystem or
spawn otool again. Caches are per instance and not thread-safe.
"""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from qcs.atos_runner import DEFAULT_XCRUN
from qcs.content import BinaryImageEntry
from qcs.errors import ExternalCommandFailed


LOG = logging.getLogger("resolver")

DEVICE_SUPPORT_DIR = Path.home() / "Library" / "Developer" / "Xcode" / "iOS DeviceSupport"

# "    uuid 5E2D1A7C-0B8E-3F4A-9C61-2D7E8B0A0C1F"
_UUID_RE = re.compile(r"uuid ([^\s]+)\s")


# ---------------------------------------------------------------------------
# Build UUID extraction
# ---------------------------------------------------------------------------

def read_build_uuid(file: Path, architecture: str, xcrun: str = DEFAULT_XCRUN) -> Optional[str]:
    """
    Read the LC_UUID of `file` for `architecture` using 'otool -l'.

    Returns:
        UUID as lowercase hex without dashes, or None when otool fails
        (e.g. the file has no slice for that architecture) or prints no
        UUID.

    Raises:
        ExternalCommandFailed if xcrun itself cannot be started.
    """
    cmd: List[str] = [xcrun, "otool", "-arch", architecture, "-l", str(file)]
    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            check=False,
        )
    except OSError as e:
        LOG.error("Failed to run otool: %s", e)
        raise ExternalCommandFailed("otool", str(e)) from e

    if proc.returncode != 0:
        LOG.debug(
            "otool exited with code %d for %s (%s): %s",
            proc.returncode,
            file,
            architecture,
            proc.stderr.strip(),
        )
        return None

    m = _UUID_RE.search(proc.stdout)
    if not m:
        return None
    return m.group(1).replace("-", "").lower()


def _cache_key(entry: BinaryImageEntry) -> str:
    return f"{entry.build_uuid}:{entry.architecture}"


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

class BinaryImageFileProvider:
    """
    Locates the symbol file matching a BinaryImageEntry.

    Implementations must return the same answer for the same entry, so
    that callers may ask repeatedly.
    """

    def provide_binary_image_file(self, entry: BinaryImageEntry) -> Optional[Path]:
        raise NotImplementedError


class _CachingFileProvider(BinaryImageFileProvider):
    """
    Common lookup loop: try each candidate file for the entry and keep the
    first one whose UUID matches.

    Cache values: a Path (found) or None (looked up, nothing found).
    Keys that are absent have not been looked up yet.
    """

    def __init__(self, xcrun: str = DEFAULT_XCRUN) -> None:
        self.xcrun = xcrun
        self._cache: Dict[str, Optional[Path]] = {}

    def _candidates(self, entry: BinaryImageEntry) -> Iterable[Path]:
        raise NotImplementedError

    def provide_binary_image_file(self, entry: BinaryImageEntry) -> Optional[Path]:
        key = _cache_key(entry)
        if key in self._cache:
            LOG.debug("Cache hit for %s (%s)", entry.binary_name, key)
            return self._cache[key]

        wanted = entry.build_uuid.lower()
        found: Optional[Path] = None
        for candidate in self._candidates(entry):
            uuid = read_build_uuid(candidate, entry.architecture, xcrun=self.xcrun)
            if uuid is None:
                continue
            if uuid == wanted:
                found = candidate
                break
            LOG.debug("UUID mismatch for %s: %s != %s", candidate, uuid, wanted)

        if found is None:
            LOG.debug("No symbol file for %s (%s)", entry.binary_name, key)
        else:
            LOG.debug("Symbol file for %s: %s", entry.binary_name, found)

        self._cache[key] = found
        return found


class SystemBinaryImageFileProvider(_CachingFileProvider):
    """
    Looks up system binaries under symbol folders such as
    ~/Library/Developer/Xcode/iOS DeviceSupport/<version>/Symbols.

    Example:
        folder      = .../iOS DeviceSupport/17.2 (21C62)/Symbols
        binary_path = /usr/lib/system/libsystem_kernel.dylib
        -> .../Symbols/usr/lib/system/libsystem_kernel.dylib
    """

    def __init__(self, folders: Optional[Sequence[Path]] = None, xcrun: str = DEFAULT_XCRUN) -> None:
        super().__init__(xcrun=xcrun)
        if folders is None:
            folders = default_device_support_folders()
        self.folders: List[Path] = [Path(f) for f in folders]

    def _candidates(self, entry: BinaryImageEntry) -> Iterable[Path]:
        rel = entry.binary_path.lstrip("/")
        for folder in self.folders:
            file = folder / rel
            if file.exists():
                yield file


class DSYMBinaryImageFileProvider(_CachingFileProvider):
    """Looks up the DWARF files of a .dSYM bundle."""

    def __init__(self, dsym: Path, xcrun: str = DEFAULT_XCRUN) -> None:
        super().__init__(xcrun=xcrun)
        self.dsym = Path(dsym)
        dwarf_dir = self.dsym / "Contents" / "Resources" / "DWARF"
        if dwarf_dir.is_dir():
            self.binary_image_files: List[Path] = sorted(
                p for p in dwarf_dir.iterdir() if not p.name.startswith(".")
            )
        else:
            LOG.warning("No DWARF directory in dSYM: %s", self.dsym)
            self.binary_image_files = []

    def _candidates(self, entry: BinaryImageEntry) -> Iterable[Path]:
        return self.binary_image_files


class BinaryImageFileProviderChain(BinaryImageFileProvider):
    """Tries each provider in order and returns the first file found."""

    def __init__(self, providers: Sequence[BinaryImageFileProvider]) -> None:
        self.providers: List[BinaryImageFileProvider] = list(providers)

    def provide_binary_image_file(self, entry: BinaryImageEntry) -> Optional[Path]:
        for provider in self.providers:
            file = provider.provide_binary_image_file(entry)
            if file is not None:
                return file
        return None


def default_device_support_folders() -> List[Path]:
    """
    The "Symbols" folder of every version directory under Xcode's
    iOS DeviceSupport directory; empty if that directory does not exist.
    """
    if not DEVICE_SUPPORT_DIR.is_dir():
        LOG.debug("Device support directory not found: %s", DEVICE_SUPPORT_DIR)
        return []
    return [
        p / "Symbols"
        for p in sorted(DEVICE_SUPPORT_DIR.iterdir())
        if not p.name.startswith(".")
    ]


__all__ = [
    "DEFAULT_XCRUN",
    "read_build_uuid",
    "BinaryImageFileProvider",
    "SystemBinaryImageFileProvider",
    "DSYMBinaryImageFileProvider",
    "BinaryImageFileProviderChain",
    "default_device_support_folders",
]
