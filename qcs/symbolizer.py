#!/usr/bin/env python3
"""
symbolizer.py

Symbolication workflow for QCS, using atos in batched mode.

Responsibilities:
  - Take a list of targets (anything with an `address` attribute).
  - Ask a BinaryImageInfoProvider which symbol file / load address /
    architecture each address belongs to.
  - Group targets by that binary image info and run the symbol
    resolution service once per group with all of the group's addresses.
  - Scatter the results back so that result[i] belongs to targets[i].

A None result means "no symbol available" (no image, no symbol file, or
the service returned fewer lines than asked for). A failing service call
is not hidden: its ExternalCommandFailed propagates to the caller.

This module does NOT parse crash reports.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from qcs.atos_runner import run_atos
from qcs.content import BinaryImageEntry
from qcs.image_finder import BinaryImageEntryFinder
from qcs.resolver import BinaryImageFileProvider


LOG = logging.getLogger("symbolizer")

# (symbol_file, architecture, load_address, addresses) -> one string per address
SymbolResolver = Callable[[Path, str, str, Sequence[str]], List[str]]


@dataclass(frozen=True)
class AddressTarget:
    address: str


@dataclass(frozen=True)
class BinaryImageInfo:
    """
    What the symbol resolution service needs to know about an image.

    Used as the grouping key, so equal images must yield equal infos.
    """
    file: Path
    load_address: str
    architecture: str


class BinaryImageInfoProvider:
    """Maps a target to the BinaryImageInfo of the image owning its address."""

    def provide_binary_image_info(self, target: AddressTarget) -> Optional[BinaryImageInfo]:
        raise NotImplementedError


class FinderBinaryImageInfoProvider(BinaryImageInfoProvider):
    """
    BinaryImageInfoProvider backed by the report's binary image table and
    a BinaryImageFileProvider for the symbol files.
    """

    def __init__(self, finder: BinaryImageEntryFinder, file_provider: BinaryImageFileProvider) -> None:
        self.finder = finder
        self.file_provider = file_provider

    def provide_binary_image_info(self, target: AddressTarget) -> Optional[BinaryImageInfo]:
        entry: Optional[BinaryImageEntry] = self.finder.find(target.address)
        if entry is None:
            return None
        file = self.file_provider.provide_binary_image_file(entry)
        if file is None:
            return None
        return BinaryImageInfo(
            file=file,
            load_address=entry.load_address,
            architecture=entry.architecture,
        )


class Symbolicator:
    def __init__(
        self,
        provider: BinaryImageInfoProvider,
        resolve: SymbolResolver = run_atos,
    ) -> None:
        self.provider = provider
        self.resolve = resolve

    def symbolicate(self, targets: Sequence[AddressTarget]) -> List[Optional[str]]:
        """
        Symbolicate all targets.

        Steps:
          1) Resolve the BinaryImageInfo of each target; skip targets
             without one.
          2) Group target indices by BinaryImageInfo (first-seen order).
          3) For each group, call the resolver once with all addresses.
          4) Write each returned line to the index it belongs to.
        """
        result: List[Optional[str]] = [None] * len(targets)

        groups: Dict[BinaryImageInfo, List[int]] = {}
        for index, target in enumerate(targets):
            info = self.provider.provide_binary_image_info(target)
            if info is None:
                LOG.debug("No binary image info for %s", target.address)
                continue
            groups.setdefault(info, []).append(index)

        for info, indices in groups.items():
            addrs = [targets[i].address for i in indices]
            LOG.info(
                "Symbolicating %d addresses in %s (%s, load address %s)",
                len(addrs),
                info.file,
                info.architecture,
                info.load_address,
            )
            symbols = self.resolve(info.file, info.architecture, info.load_address, addrs)
            if len(symbols) < len(indices):
                LOG.warning(
                    "Got %d symbols for %d addresses from %s",
                    len(symbols),
                    len(indices),
                    info.file,
                )
            # Surplus entries (e.g. the trailing empty line) are ignored.
            for target_index, symbol in zip(indices, symbols):
                result[target_index] = symbol

        return result


__all__ = [
    "SymbolResolver",
    "AddressTarget",
    "BinaryImageInfo",
    "BinaryImageInfoProvider",
    "FinderBinaryImageInfoProvider",
    "Symbolicator",
]
