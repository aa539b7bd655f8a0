#!/usr/bin/env python3
"""Compare WebP and JPEG compression of images at matched DSSIM.

Each image is encoded to WebP, then JPEG quality is bisected until the
JPEG has the same DSSIM. Sizes and scores are written as tab-separated
rows, one per image.

Usage:
    python3 scripts/compare_formats.py report.tsv image1.png image2.png
    python3 scripts/compare_formats.py --config compare.json report.tsv images/*.png
"""

import sys
from pathlib import Path

# Add project root to path for local imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from webp_compare.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
