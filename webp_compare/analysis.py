"""Report analysis module.

Loads a finished comparison report and derives per-image and aggregate
size statistics: how much smaller WebP is than JPEG at matched DSSIM,
and how both compare to the source PNG.
"""

from pathlib import Path

import matplotlib

# Use non-interactive backend for plotting in environments without display
matplotlib.use("Agg")

import matplotlib.pyplot as plt
import pandas as pd

from webp_compare.report import REPORT_COLUMNS

# Report header -> DataFrame column
_COLUMN_NAMES = {
    "File": "file",
    "PNG-Size": "original_size",
    "WebP-Size": "webp_size",
    "WebP-DSSIM": "webp_dssim",
    "JPEG-Size": "jpeg_size",
    "JPEG-DSSIM": "jpeg_dssim",
    "JPEG-Quality": "jpeg_quality",
}


def load_report(report_path: Path) -> pd.DataFrame:
    """Load a comparison report into a DataFrame with derived metrics.

    Args:
        report_path: Path to the tab-separated report

    Returns:
        DataFrame with one row per image

    Raises:
        ValueError: If the header does not match the report format
    """
    df = pd.read_csv(report_path, sep="\t")
    if list(df.columns) != REPORT_COLUMNS:
        msg = f"Unexpected report columns in {report_path}: {list(df.columns)}"
        raise ValueError(msg)

    df = df.rename(columns=_COLUMN_NAMES)

    # Positive means WebP is smaller than JPEG at matched distortion
    df["webp_savings_pct"] = (df["jpeg_size"] - df["webp_size"]) / df["jpeg_size"] * 100
    df["webp_ratio"] = df["original_size"] / df["webp_size"]
    df["jpeg_ratio"] = df["original_size"] / df["jpeg_size"]
    df["dssim_delta"] = df["jpeg_dssim"] - df["webp_dssim"]
    return df


def compute_summary(df: pd.DataFrame) -> dict[str, float]:
    """Aggregate statistics over all images in a report.

    Args:
        df: DataFrame from :func:`load_report`

    Returns:
        Dictionary of summary values; empty if the report has no rows
    """
    if df.empty:
        return {}

    total_webp = float(df["webp_size"].sum())
    total_jpeg = float(df["jpeg_size"].sum())
    return {
        "images": float(len(df)),
        "total_original_size": float(df["original_size"].sum()),
        "total_webp_size": total_webp,
        "total_jpeg_size": total_jpeg,
        "total_webp_savings_pct": (total_jpeg - total_webp) / total_jpeg * 100,
        "mean_webp_savings_pct": float(df["webp_savings_pct"].mean()),
        "median_webp_savings_pct": float(df["webp_savings_pct"].median()),
        "mean_jpeg_quality": float(df["jpeg_quality"].mean()),
        "mean_abs_dssim_delta": float(df["dssim_delta"].abs().mean()),
    }


def plot_size_comparison(df: pd.DataFrame, output_path: Path) -> None:
    """Scatter WebP size against JPEG size at matched DSSIM.

    Points below the diagonal are images where WebP is smaller.

    Args:
        df: DataFrame from :func:`load_report`
        output_path: Path to save the SVG plot
    """
    fig, ax = plt.subplots(figsize=(8, 8))

    ax.scatter(df["jpeg_size"] / 1024, df["webp_size"] / 1024, alpha=0.7)

    upper = max(df["jpeg_size"].max(), df["webp_size"].max()) / 1024 * 1.05
    ax.plot([0, upper], [0, upper], linestyle="--", color="grey", linewidth=1)

    ax.set_xlim(0, upper)
    ax.set_ylim(0, upper)
    ax.set_xlabel("JPEG size (KiB)")
    ax.set_ylabel("WebP size (KiB)")
    ax.set_title("WebP vs JPEG size at matched DSSIM")
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(output_path, format="svg")
    plt.close(fig)


def analyze_report(report_path: Path, output_dir: Path) -> dict[str, float]:
    """Run the complete analysis for a report.

    Writes ``<stem>_analysis.csv`` with per-image metrics and, when the
    report has rows, ``<stem>_sizes.svg``.

    Args:
        report_path: Path to the tab-separated report
        output_dir: Directory to save analysis outputs

    Returns:
        Summary statistics from :func:`compute_summary`
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    df = load_report(report_path)

    csv_path = output_dir / f"{report_path.stem}_analysis.csv"
    df.to_csv(csv_path, index=False)
    print(f"Per-image metrics saved to: {csv_path}")

    if not df.empty:
        plot_path = output_dir / f"{report_path.stem}_sizes.svg"
        plot_size_comparison(df, plot_path)
        print(f"Size plot saved: {plot_path}")

    return compute_summary(df)
