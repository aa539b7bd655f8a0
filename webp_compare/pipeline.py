"""Batch comparison pipeline.

For each input image the runner:

1. Encodes it to WebP at a fixed setting, decodes it, and measures the
   DSSIM against the source.
2. Flattens the source's transparency and bisects the JPEG quality until
   the JPEG DSSIM matches the WebP DSSIM (see :mod:`webp_compare.search`).
3. Appends one row with both sizes and scores to the report.

A failure at any step skips that image; the batch carries on. Images are
processed one at a time in input order.

All intermediate files for an image live in a scratch directory under
the configured working directory. The directory is removed when the
image is done, including on failure, unless ``delete_files`` is off.
"""

import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from tqdm import tqdm

from webp_compare.config import CompareConfig
from webp_compare.encoder import ImageEncoder, get_encoder_version
from webp_compare.preprocessing import ImagePreprocessor
from webp_compare.quality import QualityMeasurer, get_measurement_tool_version
from webp_compare.report import ReportRow, ReportWriter
from webp_compare.search import QualitySample, SearchResult, bisect_quality


class FileStatus(Enum):
    """Processing state of one input image."""

    PENDING = "pending"
    WEBP_ENCODED = "webp_encoded"
    SEARCH_COMPLETE = "search_complete"
    ROW_WRITTEN = "row_written"
    SKIPPED = "skipped"


@dataclass
class FileOutcome:
    """What happened to one input image."""

    path: Path
    status: FileStatus = FileStatus.PENDING
    row: ReportRow | None = None
    error_message: str | None = None


def find_missing_inputs(files: list[Path]) -> list[Path]:
    """Return the input paths that do not exist, in input order."""
    return [f for f in files if not f.exists()]


def required_tools(config: CompareConfig) -> list[str]:
    """Return the external binaries a run with *config* will call."""
    tools = ["cwebp", "dwebp", "dssim"]
    if config.use_libjpeg:
        tools.extend(["cjpeg", "djpeg"])
    else:
        tools.append("convert")
    return tools


def find_missing_tools(config: CompareConfig) -> list[str]:
    """Return the required binaries that are not on PATH."""
    return [tool for tool in required_tools(config) if shutil.which(tool) is None]


class ComparisonRunner:
    """Runs the WebP vs JPEG comparison over a list of images."""

    def __init__(self, config: CompareConfig) -> None:
        self.config = config

    # ------------------------------------------------------------------
    # Scratch files
    # ------------------------------------------------------------------

    @contextmanager
    def _scratch_dir(self, src: Path) -> Iterator[Path]:
        """Yield a fresh directory for one image's intermediate files."""
        scratch = Path(tempfile.mkdtemp(prefix=f"{src.stem}-", dir=self.config.work_dir))
        try:
            yield scratch
        finally:
            if self.config.delete_files:
                shutil.rmtree(scratch, ignore_errors=True)

    def _discard(self, *paths: Path | None) -> None:
        """Remove intermediate files after their last use."""
        if not self.config.delete_files:
            return
        for path in paths:
            if path is not None:
                path.unlink(missing_ok=True)

    def _encoder(self, scratch: Path) -> ImageEncoder:
        return ImageEncoder(
            scratch,
            timeout=self.config.timeout,
            keep_intermediates=not self.config.delete_files,
        )

    # ------------------------------------------------------------------
    # Tool versions
    # ------------------------------------------------------------------

    def collect_tool_versions(self) -> dict[str, str]:
        versions: dict[str, str] = {}
        for tool in required_tools(self.config):
            if tool == "dssim":
                v = get_measurement_tool_version(tool)
            else:
                v = get_encoder_version(tool)
            if v:
                versions[tool] = v
        return versions

    # ------------------------------------------------------------------
    # Per-format measurements
    # ------------------------------------------------------------------

    def webp_size_dssim(self, src: Path, scratch: Path) -> tuple[int, float] | None:
        """Encode *src* to WebP and measure its DSSIM against *src*.

        Returns:
            ``(webp_size, dssim)``, or None if any step failed
        """
        encoder = self._encoder(scratch)

        encoded = encoder.encode_webp(src, quality=self.config.webp_quality)
        if not encoded.success or encoded.output_path is None or encoded.file_size is None:
            print(f"  WebP encoding failed for {src}: {encoded.error_message}")
            return None

        decoded = encoder.decode_webp(encoded.output_path)
        self._discard(encoded.output_path)
        if not decoded.success or decoded.output_path is None:
            print(f"  WebP decoding failed for {src}: {decoded.error_message}")
            return None

        dssim = QualityMeasurer(self.config.timeout).measure_dssim(src, decoded.output_path)
        self._discard(decoded.output_path)
        if dssim is None:
            return None

        return encoded.file_size, dssim

    def jpeg_size_dssim(self, flat_src: Path, quality: int, scratch: Path) -> QualitySample | None:
        """Encode the flattened source to JPEG and measure its DSSIM.

        Args:
            flat_src: Source image with transparency already flattened
            quality: JPEG quality (0-100)
            scratch: Directory for intermediate files

        Returns:
            QualitySample for this quality, or None if any step failed
        """
        encoder = self._encoder(scratch)
        use_libjpeg = self.config.use_libjpeg
        output_name = f"{flat_src.stem}-q{quality}"

        encoded = encoder.encode_jpeg(
            flat_src, quality, output_name=output_name, use_libjpeg=use_libjpeg
        )
        if not encoded.success or encoded.output_path is None or encoded.file_size is None:
            print(f"  JPEG encoding failed at quality {quality}: {encoded.error_message}")
            return None

        decoded = encoder.decode_jpeg(encoded.output_path, use_libjpeg=use_libjpeg)
        self._discard(encoded.output_path)
        if not decoded.success or decoded.output_path is None:
            print(f"  JPEG decoding failed at quality {quality}: {decoded.error_message}")
            return None

        dssim = QualityMeasurer(self.config.timeout).measure_dssim(flat_src, decoded.output_path)
        self._discard(decoded.output_path)
        if dssim is None:
            return None

        return QualitySample(quality=quality, file_size=encoded.file_size, score=dssim)

    def search_jpeg(self, src: Path, target_dssim: float, scratch: Path) -> SearchResult:
        """Find the JPEG quality whose DSSIM matches *target_dssim*.

        The source is flattened once; every probe encodes the flattened
        copy and is scored against it.
        """
        try:
            flat_src = ImagePreprocessor(scratch).flatten_alpha(
                src, background=self.config.flatten_background
            )
        except OSError as e:
            return SearchResult(success=False, error_message=f"Failed to flatten {src}: {e}")

        try:
            return bisect_quality(
                lambda q: self.jpeg_size_dssim(flat_src, q, scratch),
                target_dssim,
                quality_low=self.config.quality_low,
                quality_high=self.config.quality_high,
                tolerance=self.config.tolerance,
            )
        finally:
            self._discard(flat_src)

    # ------------------------------------------------------------------
    # Per-file processing
    # ------------------------------------------------------------------

    def compare_file(self, src: Path) -> FileOutcome:
        """Run both formats for one image.

        Returns:
            FileOutcome in state SEARCH_COMPLETE with a row, or SKIPPED
        """
        outcome = FileOutcome(path=src)

        with self._scratch_dir(src) as scratch:
            webp = self.webp_size_dssim(src, scratch)
            if webp is None:
                outcome.status = FileStatus.SKIPPED
                outcome.error_message = "WebP encode/measure failed"
                return outcome
            webp_size, webp_dssim = webp
            outcome.status = FileStatus.WEBP_ENCODED

            search = self.search_jpeg(src, webp_dssim, scratch)
            if not search.success:
                outcome.status = FileStatus.SKIPPED
                outcome.error_message = search.error_message or "JPEG search failed"
                return outcome

        assert search.file_size is not None
        assert search.score is not None
        assert search.quality is not None
        outcome.row = ReportRow(
            file=str(src),
            original_size=src.stat().st_size,
            webp_size=webp_size,
            webp_dssim=webp_dssim,
            jpeg_size=search.file_size,
            jpeg_dssim=search.score,
            jpeg_quality=search.quality,
        )
        outcome.status = FileStatus.SEARCH_COMPLETE
        return outcome

    def run(self, output_path: Path, files: list[Path]) -> list[FileOutcome]:
        """Compare every image and write the report.

        Inputs and the working directory must have been validated by the
        caller; see :func:`find_missing_inputs`.

        Args:
            output_path: Tab-separated report to create
            files: Input images, processed in this order

        Returns:
            One FileOutcome per input, in input order
        """
        outcomes: list[FileOutcome] = []

        with ReportWriter(output_path) as report:
            for src in tqdm(files, desc="Comparing", unit="image"):
                outcome = self.compare_file(src)
                if outcome.row is not None:
                    report.write_row(outcome.row)
                    outcome.status = FileStatus.ROW_WRITTEN
                else:
                    tqdm.write(f"Error in file {src}, skipping ({outcome.error_message})")
                outcomes.append(outcome)

        return outcomes
