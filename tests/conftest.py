"""Shared test fixtures and helpers.

Provides common fixtures used across multiple test modules. Each test
module can still define its own specialised fixtures when needed.
"""

from pathlib import Path

import pytest
from PIL import Image

from webp_compare.config import CompareConfig

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def create_test_image(
    path: Path,
    size: tuple[int, int] = (64, 64),
    mode: str = "RGB",
    color: tuple[int, ...] = (128, 128, 128),
) -> Path:
    """Create a small test image and return its path."""
    img = Image.new(mode, size, color=color)
    path.parent.mkdir(parents=True, exist_ok=True)
    img.save(path)
    return path


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    """Pre-existing working directory for scratch files."""
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def config(work_dir: Path) -> CompareConfig:
    """Default configuration pointed at the per-test working directory."""
    return CompareConfig(work_dir=work_dir)


@pytest.fixture
def sample_images(tmp_path: Path) -> list[Path]:
    """Three small PNGs in a known order."""
    return [
        create_test_image(tmp_path / "inputs" / f"image{i}.png", color=(i * 60, 100, 150))
        for i in range(1, 4)
    ]


@pytest.fixture
def rgba_image(tmp_path: Path) -> Path:
    """A 64x48 RGBA gradient whose top-left quarter is fully transparent."""
    width, height = 64, 48
    img = Image.new("RGBA", (width, height))
    for y in range(height):
        for x in range(width):
            alpha = 0 if x < width // 2 and y < height // 2 else 255
            img.putpixel((x, y), (x * 255 // width, y * 255 // height, 96, alpha))
    path = tmp_path / "inputs" / "gradient.png"
    path.parent.mkdir(parents=True, exist_ok=True)
    img.save(path)
    return path
