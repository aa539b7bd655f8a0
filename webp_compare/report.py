"""Comparison report module.

The report is a tab-separated file with one header line and one row per
successfully compared image, in input order. Rows are flushed as they
are written so the rows already written survive a crash on a later file.
"""

import csv
from dataclasses import astuple, dataclass
from pathlib import Path
from types import TracebackType
from typing import TextIO

REPORT_COLUMNS = [
    "File",
    "PNG-Size",
    "WebP-Size",
    "WebP-DSSIM",
    "JPEG-Size",
    "JPEG-DSSIM",
    "JPEG-Quality",
]


@dataclass
class ReportRow:
    """One compared image."""

    file: str
    original_size: int
    webp_size: int
    webp_dssim: float
    jpeg_size: int
    jpeg_dssim: float
    jpeg_quality: int

    def to_fields(self) -> list[str]:
        """Return the row's values as strings, in report column order."""
        return [str(value) for value in astuple(self)]


class ReportWriter:
    """Writes report rows incrementally to a tab-separated file.

    Use as a context manager::

        with ReportWriter(path) as report:
            report.write_row(row)
    """

    def __init__(self, output_path: Path) -> None:
        self.output_path = output_path
        self.rows_written = 0
        self._file: TextIO | None = None
        self._writer = None

    def open(self) -> None:
        """Create the report file and write the header line."""
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self.output_path, "w", newline="", encoding="utf-8")
        self._writer = csv.writer(self._file, delimiter="\t", lineterminator="\n")
        self._writer.writerow(REPORT_COLUMNS)
        self._file.flush()

    def write_row(self, row: ReportRow) -> None:
        """Append one row and flush it to disk."""
        if self._file is None or self._writer is None:
            msg = "Report is not open"
            raise RuntimeError(msg)
        self._writer.writerow(row.to_fields())
        self._file.flush()
        self.rows_written += 1

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
            self._writer = None

    def __enter__(self) -> "ReportWriter":
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
