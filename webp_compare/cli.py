"""Command-line entry point for the WebP vs JPEG comparison.

Usage:
    webp-compare report.tsv image1.png image2.png ...
    webp-compare --config compare.json report.tsv images/*.png
"""

import argparse
from pathlib import Path

from webp_compare.config import CompareConfig
from webp_compare.pipeline import (
    ComparisonRunner,
    FileStatus,
    find_missing_inputs,
    find_missing_tools,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="webp-compare",
        description=(
            "Compress each image to WebP, then find the JPEG quality with the "
            "same DSSIM and report both sizes as tab-separated values."
        ),
    )
    parser.add_argument(
        "output",
        type=Path,
        help="Path of the tab-separated report to write",
    )
    parser.add_argument(
        "inputs",
        type=Path,
        nargs="+",
        help="Images to compare (PNG recommended)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Comparison config JSON (default: built-in settings)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the comparison.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    args = build_parser().parse_args(argv)

    if args.config is None:
        config = CompareConfig()
    else:
        try:
            config = CompareConfig.from_file(args.config)
        except (FileNotFoundError, ValueError) as e:
            print(f"Error loading config: {e}")
            return 1

    if not config.work_dir.is_dir():
        print(f"Error: {config.work_dir} doesn't exist. mkdir before running")
        return 1

    missing = find_missing_inputs(args.inputs)
    if missing:
        for path in missing:
            print(f"Error: Can't find {path}")
        return 1

    missing_tools = find_missing_tools(config)
    if missing_tools:
        print(f"Warning: not found on PATH: {', '.join(missing_tools)}")

    runner = ComparisonRunner(config)

    versions = runner.collect_tool_versions()
    if versions:
        print("Tools: " + ", ".join(f"{k} {v}" for k, v in versions.items()))

    outcomes = runner.run(args.output, args.inputs)

    written = sum(1 for o in outcomes if o.status is FileStatus.ROW_WRITTEN)
    skipped = len(outcomes) - written
    print("\nComparison complete.")
    print(f"  Images: {len(outcomes)}")
    print(f"  Compared: {written}")
    print(f"  Skipped: {skipped}")
    print(f"  Report: {args.output}")

    return 0
