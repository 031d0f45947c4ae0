#!/usr/bin/env python3
"""
atos_runner.py

Helper module to run atos for many addresses of one binary image.

atos is invoked once per (symbol file, architecture, load address) with
all relevant addresses, rather than spawning a new process per address:

    xcrun atos -o <file> -arch <arch> -l <load address> <addr> <addr> ...

It prints one line per address, in order, e.g.:

    main (in MyApp) (main.m:17)
    -[ViewController viewDidLoad] (in MyApp) (ViewController.m:42)
    0x0000000102a4c8f0 (in MyApp)

The "(in <module>)" part is removed from each line.
"""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path
from typing import List, Sequence

from qcs.errors import ExternalCommandFailed


LOG = logging.getLogger("atos_runner")

DEFAULT_XCRUN = "xcrun"

_IN_MODULE_RE = re.compile(r"\s*\(in .*?\)")


def strip_module_name(text: str) -> str:
    """Remove the first "(in <module>)" annotation of an atos output line."""
    return _IN_MODULE_RE.sub("", text, count=1)


def run_atos(
    symbol_file: Path,
    architecture: str,
    load_address: str,
    addresses: Sequence[str],
    xcrun: str = DEFAULT_XCRUN,
) -> List[str]:
    """
    Symbolicate `addresses` of an image loaded at `load_address`.

    Returns:
        One string per output line of atos. Normally this is one entry per
        address, plus an empty trailing entry for the final newline;
        callers only use as many entries as they asked for.

    Raises:
        ExternalCommandFailed if atos cannot be run or exits non-zero.
    """
    if not addresses:
        return []

    cmd: List[str] = [
        xcrun,
        "atos",
        "-o",
        str(symbol_file),
        "-arch",
        architecture,
        "-l",
        load_address,
    ]
    cmd.extend(addresses)

    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            check=False,
        )
    except OSError as e:
        LOG.warning("Failed to run atos: %s", e)
        raise ExternalCommandFailed("atos", str(e)) from e

    if proc.returncode != 0:
        LOG.warning(
            "atos exited with code %d for %s: %s",
            proc.returncode,
            symbol_file,
            proc.stderr.strip(),
        )
        raise ExternalCommandFailed("atos", proc.stderr)

    return [strip_module_name(line) for line in proc.stdout.split("\n")]


__all__ = [
    "DEFAULT_XCRUN",
    "strip_module_name",
    "run_atos",
]
