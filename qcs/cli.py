#!/usr/bin/env python3
"""
cli.py

Main entry point for the Quick Crash Symbolicator (QCS).

Responsibilities:
  - Load and parse Apple crash reports via report.py / parser.py
  - Print the binary images a report needs symbols for (summary mode)
  - Symbolicate reports via symbolizer.py + atos_runner.py and write the
    rewritten report
  - Provide CLI interface

Supports:
  - Input as a single crash report file
  - Input as a directory containing multiple reports (non-recursive);
    each report is written to --output-dir with the same basename.
"""

from __future__ import annotations

import argparse
import functools
import logging
import sys
from pathlib import Path
from typing import List, Optional

from qcs.atos_runner import DEFAULT_XCRUN, run_atos
from qcs.content import BinaryImageEntry
from qcs.errors import QCSError
from qcs.report import CrashReport
from qcs.resolver import (
    BinaryImageFileProvider,
    BinaryImageFileProviderChain,
    DSYMBinaryImageFileProvider,
    SystemBinaryImageFileProvider,
)
from qcs.symbolizer import SymbolResolver


LOG = logging.getLogger("qcs")


# ---------------------------------------------------------------------------
# CLI helpers
# ---------------------------------------------------------------------------

def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="qcs",
        description="Quick Crash Symbolicator (QCS) - symbolicate Apple crash reports in place.",
    )
    p.add_argument(
        "input",
        metavar="REPORT_PATH",
        help="Path to a crash report file or a directory containing crash reports.",
    )
    p.add_argument(
        "--dsym",
        action="append",
        default=[],
        metavar="PATH",
        help="dSYM bundle to look up symbol files in (may be given more than once).",
    )
    p.add_argument(
        "--device-support",
        action="append",
        default=[],
        metavar="DIR",
        help=(
            "Folder holding system symbols, laid out like the device filesystem "
            "(may be given more than once). "
            "Default: the Symbols folders under ~/Library/Developer/Xcode/iOS DeviceSupport"
        ),
    )
    p.add_argument(
        "--no-device-support",
        action="store_true",
        help="Do not look up system symbols.",
    )
    p.add_argument(
        "--xcrun",
        default=DEFAULT_XCRUN,
        help=f"xcrun executable used to run atos and otool (default: {DEFAULT_XCRUN}).",
    )
    p.add_argument(
        "--output",
        help="Write the symbolicated report to this file (file input only; default: stdout).",
    )
    p.add_argument(
        "--output-dir",
        metavar="DIR",
        help=(
            "Directory to write symbolicated reports to. "
            "Required when REPORT_PATH is a directory."
        ),
    )
    p.add_argument(
        "--summary",
        action="store_true",
        help="Print the binary images referenced by the report(s) only (no symbolication).",
    )
    p.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging.",
    )
    return p


def build_file_provider(args: argparse.Namespace) -> BinaryImageFileProvider:
    """dSYM bundles first, then system symbol folders."""
    providers: List[BinaryImageFileProvider] = [
        DSYMBinaryImageFileProvider(Path(d), xcrun=args.xcrun) for d in args.dsym
    ]
    if not args.no_device_support:
        folders = [Path(d) for d in args.device_support] if args.device_support else None
        providers.append(SystemBinaryImageFileProvider(folders, xcrun=args.xcrun))
    if not providers:
        LOG.warning("No symbol sources configured; nothing will be symbolicated.")
    return BinaryImageFileProviderChain(providers)


def list_report_files(path: Path) -> List[Path]:
    """The file itself, or all regular files directly under a directory."""
    if path.is_file():
        return [path]
    files = sorted(p for p in path.iterdir() if p.is_file())
    if not files:
        LOG.warning("No regular files found in directory: %s", path)
    return files


def print_summary(files: List[Path]) -> None:
    images: List[BinaryImageEntry] = []
    for f in files:
        report = CrashReport.from_file(f)
        for entry in report.referenced_binary_images():
            if entry not in images:
                images.append(entry)

    LOG.info("Referenced binary images: %d", len(images))
    for entry in sorted(images, key=lambda e: (e.binary_name, e.build_uuid)):
        print(f"{entry.binary_name}\t{entry.architecture}\t{entry.build_uuid}\t{entry.binary_path}")


def _ensure_output_dir(dir_path: Path) -> Path:
    if dir_path.exists():
        if not dir_path.is_dir():
            LOG.error("--output-dir must be a directory, but got a file: %s", dir_path)
            raise SystemExit(1)
    else:
        LOG.info("Creating output directory: %s", dir_path)
        dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def run_symbolication(
    report_path: Path,
    file_provider: BinaryImageFileProvider,
    resolve: SymbolResolver,
    output: Optional[str],
    output_dir: Optional[str],
) -> None:
    if report_path.is_dir():
        if not output_dir:
            LOG.error("--output-dir is required when REPORT_PATH is a directory: %s", report_path)
            raise SystemExit(1)
        out_dir = _ensure_output_dir(Path(output_dir))
        for f in list_report_files(report_path):
            report = CrashReport.from_file(f)
            report.symbolicate_as_file(file_provider, out_dir / f.name, resolve=resolve)
        return

    report = CrashReport.from_file(report_path)

    if output_dir:
        out_dir = _ensure_output_dir(Path(output_dir))
        report.symbolicate_as_file(file_provider, out_dir / report_path.name, resolve=resolve)
        return

    if output:
        report.symbolicate_as_file(file_provider, Path(output), resolve=resolve)
        return

    # Default: write the symbolicated report to stdout as is
    sys.stdout.write(report.symbolicate_as_text(file_provider, resolve=resolve))


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> None:
    args = build_argparser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )

    report_path = Path(args.input)
    if not report_path.exists():
        LOG.error("Input path does not exist: %s", report_path)
        raise SystemExit(1)

    if args.output and args.output_dir:
        LOG.warning("--output-dir is specified; ignoring --output.")

    try:
        if args.summary:
            print_summary(list_report_files(report_path))
            return

        run_symbolication(
            report_path=report_path,
            file_provider=build_file_provider(args),
            resolve=functools.partial(run_atos, xcrun=args.xcrun),
            output=args.output,
            output_dir=args.output_dir,
        )
    except QCSError as e:
        LOG.error("%s", e)
        raise SystemExit(1)
    except OSError as e:
        LOG.error("I/O error: %s", e)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
