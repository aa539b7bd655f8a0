#!/usr/bin/env python3
"""Summarize a WebP vs JPEG comparison report.

Prints aggregate size savings and, with ``--output``, writes a CSV of
per-image metrics and an SVG scatter plot of WebP vs JPEG sizes.
"""

import argparse
import sys
from pathlib import Path

# Add project root to path for local imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from webp_compare.analysis import analyze_report, compute_summary, load_report  # noqa: E402


def main() -> int:
    """Main entry point for report analysis."""
    parser = argparse.ArgumentParser(
        description="Summarize a WebP vs JPEG comparison report",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Print summary only
  python scripts/analyze_report.py report.tsv

  # Also write per-image CSV and size plot
  python scripts/analyze_report.py report.tsv --output data/analysis
        """,
    )
    parser.add_argument("report", type=Path, help="Tab-separated comparison report")
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        help="Directory for the per-image CSV and plot",
    )
    args = parser.parse_args()

    if not args.report.exists():
        print(f"Error: Report not found: {args.report}")
        return 1

    try:
        if args.output is not None:
            summary = analyze_report(args.report, args.output)
        else:
            summary = compute_summary(load_report(args.report))
    except ValueError as e:
        print(f"Error reading report: {e}")
        return 1

    if not summary:
        print("Report has no rows.")
        return 0

    print(f"\nImages: {int(summary['images'])}")
    print(f"  Total PNG:  {summary['total_original_size'] / 1024:.1f} KiB")
    print(f"  Total WebP: {summary['total_webp_size'] / 1024:.1f} KiB")
    print(f"  Total JPEG: {summary['total_jpeg_size'] / 1024:.1f} KiB")
    print(f"  WebP savings vs JPEG: {summary['total_webp_savings_pct']:.1f}% overall")
    print(
        f"  Per image: mean={summary['mean_webp_savings_pct']:.1f}%, "
        f"median={summary['median_webp_savings_pct']:.1f}%"
    )
    print(f"  Mean JPEG quality: {summary['mean_jpeg_quality']:.1f}")
    print(f"  Mean |DSSIM delta|: {summary['mean_abs_dssim_delta']:.4f}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
