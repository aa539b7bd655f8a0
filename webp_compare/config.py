"""Comparison configuration module.

This module holds the process-wide settings for a comparison run: where
scratch files go, which JPEG toolchain to use, whether intermediates are
kept, and the bisection bracket used when matching JPEG distortion to
WebP distortion. Settings are fixed before a run starts and passed
explicitly to the runner.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from PIL import ImageColor

DEFAULT_WORK_DIR = Path("/tmp/webp-tests")


@dataclass
class CompareConfig:
    """Configuration for a WebP vs JPEG comparison run."""

    work_dir: Path = DEFAULT_WORK_DIR
    use_libjpeg: bool = True
    delete_files: bool = True
    webp_quality: int | None = None
    quality_low: int = 80
    quality_high: int = 100
    tolerance: float = 0.01
    flatten_background: str = "black"
    timeout: float | None = None

    def __post_init__(self) -> None:
        self.work_dir = Path(self.work_dir)
        self.validate()

    def validate(self) -> None:
        """Check that all values are usable.

        Raises:
            ValueError: If any setting is out of range
        """
        if not 0 <= self.quality_low < self.quality_high <= 100:
            msg = (
                f"Invalid quality range [{self.quality_low}, {self.quality_high}]: "
                "expected 0 <= low < high <= 100"
            )
            raise ValueError(msg)
        if self.webp_quality is not None and not 0 <= self.webp_quality <= 100:
            msg = f"Invalid WebP quality: {self.webp_quality}"
            raise ValueError(msg)
        if self.tolerance <= 0:
            msg = f"Tolerance must be positive, got {self.tolerance}"
            raise ValueError(msg)
        if self.timeout is not None and self.timeout <= 0:
            msg = f"Timeout must be positive, got {self.timeout}"
            raise ValueError(msg)
        try:
            ImageColor.getrgb(self.flatten_background)
        except ValueError as e:
            msg = f"Invalid flatten background colour: {self.flatten_background!r}"
            raise ValueError(msg) from e

    @classmethod
    def from_file(cls, config_path: Path) -> "CompareConfig":
        """Load a comparison configuration from a JSON file.

        Args:
            config_path: Path to the configuration JSON file

        Returns:
            CompareConfig instance

        Raises:
            FileNotFoundError: If config file does not exist
            ValueError: If config file has invalid content
        """
        if not config_path.exists():
            msg = f"Comparison config not found: {config_path}"
            raise FileNotFoundError(msg)

        with open(config_path) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                msg = f"Invalid JSON in {config_path}: {e}"
                raise ValueError(msg) from e

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CompareConfig":
        """Create CompareConfig from a dictionary.

        Unknown keys are rejected so that typos do not silently fall back
        to defaults.

        Args:
            data: Dictionary matching the config JSON schema

        Returns:
            CompareConfig instance

        Raises:
            ValueError: If a key is unknown or a value is invalid
        """
        if not isinstance(data, dict):
            msg = "Comparison config must be a JSON object"
            raise ValueError(msg)

        known = {
            "work_dir",
            "use_libjpeg",
            "delete_files",
            "webp_quality",
            "quality_range",
            "tolerance",
            "flatten_background",
            "timeout",
        }
        unknown = sorted(set(data) - known)
        if unknown:
            msg = f"Unknown config keys: {', '.join(unknown)}"
            raise ValueError(msg)

        kwargs: dict[str, Any] = {}
        if "work_dir" in data:
            kwargs["work_dir"] = Path(data["work_dir"])
        for key in ("use_libjpeg", "delete_files"):
            if key in data:
                kwargs[key] = bool(data[key])
        if "webp_quality" in data:
            kwargs["webp_quality"] = data["webp_quality"]
        if "quality_range" in data:
            low, high = _parse_quality_range(data["quality_range"])
            kwargs["quality_low"] = low
            kwargs["quality_high"] = high
        if "tolerance" in data:
            kwargs["tolerance"] = float(data["tolerance"])
        if "flatten_background" in data:
            kwargs["flatten_background"] = str(data["flatten_background"])
        if "timeout" in data and data["timeout"] is not None:
            kwargs["timeout"] = float(data["timeout"])

        return cls(**kwargs)


def _parse_quality_range(value: list[int] | dict[str, int]) -> tuple[int, int]:
    """Parse the bisection bracket.

    Supports:
    - Two-element list: ``[80, 100]``
    - Range object: ``{"low": 80, "high": 100}``

    Args:
        value: Quality range specification from the config

    Returns:
        ``(low, high)`` tuple
    """
    if isinstance(value, list) and len(value) == 2:
        return int(value[0]), int(value[1])
    if isinstance(value, dict) and "low" in value and "high" in value:
        return int(value["low"]), int(value["high"])
    msg = f"Invalid quality range specification: {value}"
    raise ValueError(msg)
