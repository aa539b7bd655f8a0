"""Quality measurement module.

This module measures perceptual distortion between a reference image
and a decoded candidate with the external ``dssim`` tool. DSSIM is a
dissimilarity score: 0 means identical, larger is worse.

``dssim`` only reads PNG reliably, so any other input is converted to
PNG first; the comparison always runs on decoded pixels, never on
compressed bytes.
"""

import math
import re
import subprocess
import tempfile
from pathlib import Path


def get_measurement_tool_version(tool: str) -> str | None:
    """Get version string for a measurement tool.

    Args:
        tool: Name of measurement tool (dssim)

    Returns:
        Version string or None if unable to determine
    """
    try:
        if tool == "dssim":
            # dssim: "dssim 3.2.0"
            result = subprocess.run(
                ["dssim", "--version"],
                capture_output=True,
                text=True,
                timeout=5,
            )
            output = result.stdout + result.stderr
            match = re.search(r"(\d+\.\d+(?:\.\d+)?)", output)
            if match:
                return match.group(1)
            # Older builds have no --version but the binary exists
            return "available"

    except (subprocess.TimeoutExpired, subprocess.CalledProcessError, FileNotFoundError):
        pass

    return None


def parse_dssim_output(output: str) -> float | None:
    """Extract the score from ``dssim`` stdout.

    Current releases print ``<score>\\t<file>`` per compared image, older
    ones print the bare score.

    Args:
        output: Captured standard output

    Returns:
        The score, or None if the output holds no finite number
    """
    tokens = output.split()
    if not tokens:
        return None
    try:
        score = float(tokens[0])
    except ValueError:
        return None
    if not math.isfinite(score) or score < 0:
        return None
    return score


class QualityMeasurer:
    """Handles distortion measurements for decoded images."""

    def __init__(self, timeout: float | None = None) -> None:
        """Initialize the measurer.

        Args:
            timeout: Seconds to wait for ``dssim``, or None to wait indefinitely
        """
        self.timeout = timeout

    @staticmethod
    def _to_png(image_path: Path, output_path: Path) -> None:
        """Convert an image to PNG format for the measurement tool.

        Args:
            image_path: Path to the source image (any Pillow-readable format)
            output_path: Path where PNG will be written

        Raises:
            OSError: If image cannot be read or written
        """
        from PIL import Image

        try:
            with Image.open(image_path) as img:
                if img.mode not in ("RGB", "RGBA", "L", "LA"):
                    img.convert("RGBA").save(output_path, format="PNG")
                else:
                    img.save(output_path, format="PNG")
        except Exception as e:
            msg = f"Failed to convert {image_path} to PNG: {e}"
            raise OSError(msg) from e

    def measure_dssim(self, original: Path, compressed: Path) -> float | None:
        """Measure DSSIM between two images.

        Both images are converted to PNG if they are not PNG already.

        Args:
            original: Path to the reference image
            compressed: Path to the decoded candidate image

        Returns:
            DSSIM score (lower is better, 0 = identical), or None on failure
        """
        try:
            with tempfile.TemporaryDirectory() as tmpdir:
                tmpdir_path = Path(tmpdir)

                orig_for_measure = original
                comp_for_measure = compressed

                if original.suffix.lower() != ".png":
                    orig_for_measure = tmpdir_path / "original.png"
                    self._to_png(original, orig_for_measure)

                if compressed.suffix.lower() != ".png":
                    comp_for_measure = tmpdir_path / "compressed.png"
                    self._to_png(compressed, comp_for_measure)

                cmd = ["dssim", str(orig_for_measure), str(comp_for_measure)]
                result = subprocess.run(
                    cmd, capture_output=True, check=True, text=True, timeout=self.timeout
                )

                score = parse_dssim_output(result.stdout)
                if score is None:
                    print(f"DSSIM measurement failed: unexpected output {result.stdout!r}")
                return score
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
            print(f"DSSIM measurement failed: {e}")
            return None
