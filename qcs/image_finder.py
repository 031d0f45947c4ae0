#!/usr/bin/env python3
"""
image_finder.py

Find the binary image that an address belongs to.

The "Binary Images" rows are turned into a table of numeric
(load_address, end_address, index) entries sorted by load address.
A lookup picks the last image loaded at or below the address and accepts
it only if the address is not past that image's end address.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from qcs.content import BinaryImageEntry
from qcs.errors import InvalidAddress
from qcs.utils import binary_search, parse_address


LOG = logging.getLogger("image_finder")


@dataclass(frozen=True)
class _AddressRange:
    load_address: int
    end_address: int
    index: int


class BinaryImageEntryFinder:
    def __init__(self, binary_images: Sequence[BinaryImageEntry]) -> None:
        """
        Raises InvalidAddress if any row has an unparsable load or end address.
        """
        self._binary_images: List[BinaryImageEntry] = list(binary_images)
        table = [
            _AddressRange(
                load_address=parse_address(entry.load_address),
                end_address=parse_address(entry.end_address),
                index=index,
            )
            for index, entry in enumerate(self._binary_images)
        ]
        table.sort(key=lambda r: r.load_address)
        self._table = table
        LOG.debug("Address table built with %d binary images", len(table))

    def __len__(self) -> int:
        return len(self._table)

    def find(self, address: str) -> Optional[BinaryImageEntry]:
        """
        Return the binary image whose [load, end] range contains address,
        or None. A malformed address is simply not found.
        """
        try:
            addr = parse_address(address)
        except InvalidAddress:
            return None

        def judge(i: int) -> int:
            load = self._table[i].load_address
            if load < addr:
                return -1
            if load > addr:
                return 1
            return 0

        found, index = binary_search(0, len(self._table), judge)
        # An exact hit on a load address is the image itself.
        candidate = index if found else index - 1
        if candidate < 0:
            return None

        entry = self._table[candidate]
        if addr > entry.end_address:
            return None
        return self._binary_images[entry.index]


__all__ = [
    "BinaryImageEntryFinder",
]
