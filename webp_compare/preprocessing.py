"""Image preprocessing module.

This module handles raster conversions needed around the external
codecs: flattening transparency before JPEG encoding, and converting
between PNG and PPM containers.
"""

from pathlib import Path

from PIL import Image


def _has_alpha(img: Image.Image) -> bool:
    """Return True if the image carries any transparency information."""
    if img.mode in ("RGBA", "LA", "PA", "RGBa", "La"):
        return True
    return img.mode == "P" and "transparency" in img.info


class ImagePreprocessor:
    """Handles image preprocessing operations."""

    def __init__(self, output_dir: Path) -> None:
        """Initialize the image preprocessor.

        Args:
            output_dir: Directory where preprocessed images will be stored
        """
        self.output_dir = output_dir
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def flatten_alpha(
        self,
        input_path: Path,
        background: str = "black",
        output_name: str | None = None,
    ) -> Path:
        """Composite an image onto a solid background and drop its alpha.

        JPEG has no alpha channel, so both the image fed to the JPEG
        encoder and the reference it is scored against must be the
        flattened version.

        Args:
            input_path: Path to the input image
            background: Background colour name or hex string
            output_name: Optional output filename (without extension)

        Returns:
            Path to the flattened PNG image
        """
        if output_name is None:
            output_name = f"{input_path.stem}-flat"
        output_path = self.output_dir / f"{output_name}.png"

        with Image.open(input_path) as img:
            if _has_alpha(img):
                rgba = img.convert("RGBA")
                flat = Image.new("RGB", rgba.size, background)
                flat.paste(rgba, mask=rgba.split()[3])
            else:
                flat = img.convert("RGB")
            flat.save(output_path, "PNG")

        return output_path

    def convert_to_png(self, input_path: Path, output_name: str | None = None) -> Path:
        """Convert image to PNG format.

        Args:
            input_path: Path to the input image
            output_name: Optional output filename (without extension)

        Returns:
            Path to the converted PNG image
        """
        if output_name is None:
            output_name = input_path.stem
        output_path = self.output_dir / f"{output_name}.png"

        with Image.open(input_path) as img:
            # PNG supports both RGB and RGBA
            converted_img = img
            if img.mode not in ["RGB", "RGBA", "L"]:
                converted_img = img.convert("RGBA" if _has_alpha(img) else "RGB")  # type: ignore
            converted_img.save(output_path, "PNG")

        return output_path

    def convert_to_ppm(self, input_path: Path, output_name: str | None = None) -> Path:
        """Convert image to binary PPM, the input format ``cjpeg`` reads.

        Any alpha channel is discarded; callers flatten first.

        Args:
            input_path: Path to the input image
            output_name: Optional output filename (without extension)

        Returns:
            Path to the PPM image
        """
        if output_name is None:
            output_name = input_path.stem
        output_path = self.output_dir / f"{output_name}.ppm"

        with Image.open(input_path) as img:
            img.convert("RGB").save(output_path, "PPM")

        return output_path
