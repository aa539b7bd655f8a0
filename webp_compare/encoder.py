"""Image encoding module.

This module handles encoding images to WebP and JPEG, and decoding them
back to PNG, using external command-line tools (libwebp's cwebp/dwebp,
libjpeg's cjpeg/djpeg, or ImageMagick's convert).

Every call returns an :class:`EncodeResult`. A tool that is missing,
exits non-zero, times out or leaves no output file yields
``success=False`` rather than an exception, so the caller can skip just
the image being processed.
"""

import re
import subprocess
from dataclasses import dataclass
from pathlib import Path

from webp_compare.preprocessing import ImagePreprocessor


@dataclass
class EncodeResult:
    """Result of an encoding or decoding operation."""

    success: bool
    output_path: Path | None
    file_size: int | None
    error_message: str | None = None


def get_encoder_version(encoder: str) -> str | None:
    """Get version string for an encoder tool.

    Args:
        encoder: Name of encoder tool (cwebp, dwebp, cjpeg, djpeg, convert)

    Returns:
        Version string or None if unable to determine
    """
    try:
        if encoder in ("cwebp", "dwebp"):
            # libwebp: "1.5.0" (simple version output)
            result = subprocess.run(
                [encoder, "-version"],
                capture_output=True,
                text=True,
                timeout=5,
            )
            output = result.stdout + result.stderr
            lines = output.strip().split("\n")
            if lines:
                match = re.search(r"(\d+\.\d+\.\d+)", lines[0])
                if match:
                    return match.group(1)
            return "unknown"

        elif encoder in ("cjpeg", "djpeg"):
            # libjpeg-turbo prints its version banner on -version
            result = subprocess.run(
                [encoder, "-version"],
                capture_output=True,
                text=True,
                timeout=5,
            )
            output = result.stdout + result.stderr
            match = re.search(r"version\s+(\d+\.\d+\.\d+)", output, re.IGNORECASE)
            if match:
                return match.group(1)
            match = re.search(r"libjpeg-turbo\s+(\d+\.\d+\.\d+)", output, re.IGNORECASE)
            if match:
                return f"libjpeg-turbo {match.group(1)}"
            return "unknown"

        elif encoder == "convert":
            # ImageMagick: "Version: ImageMagick 6.9.11-60 Q16 x86_64"
            result = subprocess.run(
                ["convert", "-version"],
                capture_output=True,
                text=True,
                timeout=5,
            )
            match = re.search(r"ImageMagick\s+(\S+)", result.stdout)
            if match:
                return match.group(1)
            return "unknown"

    except (subprocess.TimeoutExpired, subprocess.CalledProcessError, FileNotFoundError):
        pass

    return None


class ImageEncoder:
    """Handles encoding images to WebP and JPEG and decoding them to PNG."""

    def __init__(
        self,
        output_dir: Path,
        timeout: float | None = None,
        keep_intermediates: bool = False,
    ) -> None:
        """Initialize the image encoder.

        Args:
            output_dir: Directory where encoded images will be stored
            timeout: Seconds to wait for each external tool, or None to wait
                indefinitely
            keep_intermediates: Keep the PPM files passed to and from
                cjpeg/djpeg instead of removing them after use
        """
        self.output_dir = output_dir
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout
        self.keep_intermediates = keep_intermediates

    def _run(self, cmd: list[str], output_path: Path) -> EncodeResult:
        """Run an external tool that is expected to write *output_path*."""
        try:
            subprocess.run(cmd, check=True, capture_output=True, timeout=self.timeout)
        except subprocess.CalledProcessError as e:
            return EncodeResult(
                success=False,
                output_path=None,
                file_size=None,
                error_message=e.stderr.decode(errors="replace") if e.stderr else str(e),
            )
        except subprocess.TimeoutExpired:
            return EncodeResult(
                success=False,
                output_path=None,
                file_size=None,
                error_message=f"{cmd[0]} timed out after {self.timeout}s",
            )
        except FileNotFoundError:
            return EncodeResult(
                success=False,
                output_path=None,
                file_size=None,
                error_message=f"{cmd[0]} not found on PATH",
            )

        if not output_path.exists():
            return EncodeResult(
                success=False,
                output_path=None,
                file_size=None,
                error_message=f"{cmd[0]} produced no output at {output_path}",
            )

        return EncodeResult(
            success=True, output_path=output_path, file_size=output_path.stat().st_size
        )

    def encode_webp(
        self,
        input_path: Path,
        quality: int | None = None,
        output_name: str | None = None,
    ) -> EncodeResult:
        """Encode image to WebP format.

        Args:
            input_path: Path to the input image
            quality: Quality setting (0-100), or None for the cwebp default
            output_name: Optional output filename (without extension)

        Returns:
            EncodeResult with encoding details
        """
        if output_name is None:
            output_name = input_path.stem
        output_path = self.output_dir / f"{output_name}.webp"

        cmd = ["cwebp", "-quiet"]
        if quality is not None:
            cmd.extend(["-q", str(quality)])
        cmd.extend([str(input_path), "-o", str(output_path)])
        return self._run(cmd, output_path)

    def decode_webp(self, input_path: Path, output_name: str | None = None) -> EncodeResult:
        """Decode a WebP file to PNG.

        Args:
            input_path: Path to the WebP file
            output_name: Optional output filename (without extension)

        Returns:
            EncodeResult pointing at the decoded PNG
        """
        if output_name is None:
            output_name = f"{input_path.stem}-dwebp"
        output_path = self.output_dir / f"{output_name}.png"

        cmd = ["dwebp", "-quiet", str(input_path), "-o", str(output_path)]
        return self._run(cmd, output_path)

    def encode_jpeg(
        self,
        input_path: Path,
        quality: int,
        output_name: str | None = None,
        use_libjpeg: bool = True,
    ) -> EncodeResult:
        """Encode image to JPEG format.

        With ``use_libjpeg`` the image is first converted to PPM, which is
        what ``cjpeg`` reads, and encoded with Huffman table optimisation.
        The PPM is removed once ``cjpeg`` finishes unless intermediates are
        kept. Otherwise ImageMagick's ``convert`` encodes the image in one
        step.

        Args:
            input_path: Path to the input image (already flattened)
            quality: Quality setting (0-100)
            output_name: Optional output filename (without extension)
            use_libjpeg: Use cjpeg instead of ImageMagick

        Returns:
            EncodeResult with encoding details
        """
        if output_name is None:
            output_name = input_path.stem
        output_path = self.output_dir / f"{output_name}.jpg"

        if not use_libjpeg:
            cmd = ["convert", str(input_path), "-quality", str(quality), str(output_path)]
            return self._run(cmd, output_path)

        cjpeg_native_formats = {".ppm", ".pgm", ".bmp", ".tga"}
        ppm_path: Path | None = None
        if input_path.suffix.lower() in cjpeg_native_formats:
            cjpeg_input = input_path
        else:
            try:
                ppm_path = ImagePreprocessor(self.output_dir).convert_to_ppm(
                    input_path, output_name=output_name
                )
            except OSError as e:
                return EncodeResult(
                    success=False,
                    output_path=None,
                    file_size=None,
                    error_message=f"Failed to convert {input_path} to PPM: {e}",
                )
            cjpeg_input = ppm_path

        try:
            cmd = [
                "cjpeg",
                "-optimize",
                "-quality",
                str(quality),
                "-outfile",
                str(output_path),
                str(cjpeg_input),
            ]
            return self._run(cmd, output_path)
        finally:
            if ppm_path is not None and not self.keep_intermediates:
                ppm_path.unlink(missing_ok=True)

    def decode_jpeg(
        self,
        input_path: Path,
        output_name: str | None = None,
        use_libjpeg: bool = True,
    ) -> EncodeResult:
        """Decode a JPEG file to PNG.

        With ``use_libjpeg``, ``djpeg`` writes a PPM which is then converted
        to PNG and removed. Otherwise ImageMagick's ``convert`` writes the
        PNG directly.

        Args:
            input_path: Path to the JPEG file
            output_name: Optional output filename (without extension)
            use_libjpeg: Use djpeg instead of ImageMagick

        Returns:
            EncodeResult pointing at the decoded PNG
        """
        if output_name is None:
            output_name = f"{input_path.stem}-djpeg"
        output_path = self.output_dir / f"{output_name}.png"

        if not use_libjpeg:
            return self._run(["convert", str(input_path), str(output_path)], output_path)

        ppm_path = self.output_dir / f"{output_name}.ppm"
        result = self._run(["djpeg", "-outfile", str(ppm_path), str(input_path)], ppm_path)
        if not result.success:
            return result

        try:
            ImagePreprocessor(self.output_dir).convert_to_png(ppm_path, output_name=output_name)
        except OSError as e:
            return EncodeResult(
                success=False,
                output_path=None,
                file_size=None,
                error_message=f"Failed to convert {ppm_path} to PNG: {e}",
            )
        finally:
            if not self.keep_intermediates:
                ppm_path.unlink(missing_ok=True)

        return EncodeResult(
            success=True, output_path=output_path, file_size=output_path.stat().st_size
        )
