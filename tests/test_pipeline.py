"""Tests for the batch comparison pipeline."""

from pathlib import Path
from unittest.mock import patch

import pytest
from PIL import Image

from webp_compare.config import CompareConfig
from webp_compare.encoder import EncodeResult, ImageEncoder
from webp_compare.pipeline import (
    ComparisonRunner,
    FileStatus,
    find_missing_inputs,
    find_missing_tools,
    required_tools,
)
from webp_compare.quality import QualityMeasurer
from webp_compare.search import QualitySample

# ---------------------------------------------------------------------------
# Stand-in codecs
# ---------------------------------------------------------------------------


class FakeWebP:
    """Stand-in for ``webp_size_dssim``: fixed size, target 100/95."""

    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.fail_for = fail_for or set()
        self.calls: list[Path] = []

    def __call__(self, src: Path, scratch: Path) -> tuple[int, float] | None:
        self.calls.append(src)
        assert scratch.is_dir()
        if src.name in self.fail_for:
            return None
        return 1_234, 100 / 95


class FakeJpeg:
    """Stand-in for ``jpeg_size_dssim`` with score 100/q."""

    def __init__(self, fail_at: set[int] | None = None) -> None:
        self.fail_at = fail_at or set()
        self.calls: list[tuple[Path, int]] = []

    def __call__(self, flat_src: Path, quality: int, scratch: Path) -> QualitySample | None:
        self.calls.append((flat_src, quality))
        if quality in self.fail_at:
            return None
        return QualitySample(quality=quality, file_size=quality * 100, score=100 / quality)


def read_rows(path: Path) -> list[list[str]]:
    return [line.split("\t") for line in path.read_text().splitlines()]


# ---------------------------------------------------------------------------
# Input validation helpers
# ---------------------------------------------------------------------------


def test_find_missing_inputs(tmp_path: Path, sample_images: list[Path]) -> None:
    missing = tmp_path / "nope.png"
    files = [sample_images[0], missing, sample_images[1]]
    assert find_missing_inputs(files) == [missing]
    assert find_missing_inputs(sample_images) == []


def test_required_tools_follow_jpeg_toolchain(work_dir: Path) -> None:
    assert required_tools(CompareConfig(work_dir=work_dir)) == [
        "cwebp",
        "dwebp",
        "dssim",
        "cjpeg",
        "djpeg",
    ]
    assert "convert" in required_tools(CompareConfig(work_dir=work_dir, use_libjpeg=False))


def test_find_missing_tools(config: CompareConfig) -> None:
    with patch("webp_compare.pipeline.shutil.which", side_effect=lambda t: None if t == "dssim" else t):
        assert find_missing_tools(config) == ["dssim"]


# ---------------------------------------------------------------------------
# Batch driver
# ---------------------------------------------------------------------------


class TestRun:
    """Tests for ComparisonRunner.run with stand-in codecs."""

    def test_all_files_written_in_order(
        self, tmp_path: Path, config: CompareConfig, sample_images: list[Path]
    ) -> None:
        runner = ComparisonRunner(config)
        output = tmp_path / "report.tsv"

        with (
            patch.object(runner, "webp_size_dssim", side_effect=FakeWebP()),
            patch.object(runner, "jpeg_size_dssim", side_effect=FakeJpeg()),
        ):
            outcomes = runner.run(output, sample_images)

        assert [o.status for o in outcomes] == [FileStatus.ROW_WRITTEN] * 3
        rows = read_rows(output)
        assert rows[0][0] == "File"
        assert [r[0] for r in rows[1:]] == [str(p) for p in sample_images]
        first = rows[1]
        assert first[1] == str(sample_images[0].stat().st_size)
        assert first[2] == "1234"
        assert float(first[3]) == pytest.approx(100 / 95)
        assert first[4] == "9500"
        assert float(first[5]) == pytest.approx(100 / 95)
        assert first[6] == "95"

    def test_webp_failure_skips_only_that_file(
        self,
        tmp_path: Path,
        config: CompareConfig,
        sample_images: list[Path],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        runner = ComparisonRunner(config)
        output = tmp_path / "report.tsv"
        fake_jpeg = FakeJpeg()

        with (
            patch.object(runner, "webp_size_dssim", side_effect=FakeWebP({"image2.png"})),
            patch.object(runner, "jpeg_size_dssim", side_effect=fake_jpeg),
        ):
            outcomes = runner.run(output, sample_images)

        rows = read_rows(output)
        assert len(rows) - 1 == len(sample_images) - 1
        assert [r[0] for r in rows[1:]] == [str(sample_images[0]), str(sample_images[2])]
        assert [o.status for o in outcomes] == [
            FileStatus.ROW_WRITTEN,
            FileStatus.SKIPPED,
            FileStatus.ROW_WRITTEN,
        ]
        assert outcomes[1].row is None
        # No JPEG search was attempted for the skipped file
        assert all("image2" not in flat.name for flat, _ in fake_jpeg.calls)
        assert f"Error in file {sample_images[1]}, skipping" in capsys.readouterr().out

    def test_search_failure_skips_file(
        self, tmp_path: Path, config: CompareConfig, sample_images: list[Path]
    ) -> None:
        runner = ComparisonRunner(config)
        output = tmp_path / "report.tsv"

        with (
            patch.object(runner, "webp_size_dssim", side_effect=FakeWebP()),
            patch.object(runner, "jpeg_size_dssim", side_effect=FakeJpeg(fail_at={95})),
        ):
            outcomes = runner.run(output, sample_images)

        assert all(o.status is FileStatus.SKIPPED for o in outcomes)
        assert all("95" in (o.error_message or "") for o in outcomes)
        assert read_rows(output) == [
            ["File", "PNG-Size", "WebP-Size", "WebP-DSSIM", "JPEG-Size", "JPEG-DSSIM", "JPEG-Quality"]
        ]

    def test_empty_input_writes_header_only(self, tmp_path: Path, config: CompareConfig) -> None:
        output = tmp_path / "report.tsv"
        assert ComparisonRunner(config).run(output, []) == []
        assert len(read_rows(output)) == 1

    def test_search_uses_configured_bracket(
        self, tmp_path: Path, work_dir: Path, sample_images: list[Path]
    ) -> None:
        config = CompareConfig(work_dir=work_dir, quality_low=50, quality_high=60)
        runner = ComparisonRunner(config)
        fake_jpeg = FakeJpeg()

        with (
            patch.object(runner, "webp_size_dssim", side_effect=FakeWebP()),
            patch.object(runner, "jpeg_size_dssim", side_effect=fake_jpeg),
        ):
            runner.run(tmp_path / "report.tsv", sample_images[:1])

        assert fake_jpeg.calls[0][1] == 55
        assert all(50 <= q <= 60 for _, q in fake_jpeg.calls)


# ---------------------------------------------------------------------------
# Scratch directory lifecycle
# ---------------------------------------------------------------------------


class TestScratchFiles:
    """Intermediate files do not outlive the image that created them."""

    def test_scratch_removed_after_success(
        self, tmp_path: Path, config: CompareConfig, sample_images: list[Path]
    ) -> None:
        runner = ComparisonRunner(config)
        with (
            patch.object(runner, "webp_size_dssim", side_effect=FakeWebP()),
            patch.object(runner, "jpeg_size_dssim", side_effect=FakeJpeg()),
        ):
            runner.run(tmp_path / "report.tsv", sample_images)

        assert list(config.work_dir.iterdir()) == []

    def test_scratch_removed_after_failure(
        self, tmp_path: Path, config: CompareConfig, sample_images: list[Path]
    ) -> None:
        runner = ComparisonRunner(config)
        with (
            patch.object(runner, "webp_size_dssim", side_effect=FakeWebP()),
            patch.object(runner, "jpeg_size_dssim", side_effect=FakeJpeg(fail_at={90})),
        ):
            runner.run(tmp_path / "report.tsv", sample_images)

        assert list(config.work_dir.iterdir()) == []

    def test_scratch_removed_when_step_raises(
        self, config: CompareConfig, sample_images: list[Path]
    ) -> None:
        runner = ComparisonRunner(config)
        with (
            patch.object(runner, "webp_size_dssim", side_effect=RuntimeError("boom")),
            pytest.raises(RuntimeError),
        ):
            runner.compare_file(sample_images[0])

        assert list(config.work_dir.iterdir()) == []

    def test_scratch_kept_when_delete_disabled(
        self, tmp_path: Path, work_dir: Path, sample_images: list[Path]
    ) -> None:
        config = CompareConfig(work_dir=work_dir, delete_files=False)
        runner = ComparisonRunner(config)
        with (
            patch.object(runner, "webp_size_dssim", side_effect=FakeWebP()),
            patch.object(runner, "jpeg_size_dssim", side_effect=FakeJpeg()),
        ):
            runner.run(tmp_path / "report.tsv", sample_images)

        kept = sorted(p.name for p in work_dir.iterdir())
        assert len(kept) == 3
        assert kept[0].startswith("image1-")
        # The flattened reference is kept for inspection
        assert list(work_dir.glob("image1-*/image1-flat.png"))


# ---------------------------------------------------------------------------
# Per-format measurement
# ---------------------------------------------------------------------------


def _write(path: Path, size: int = 10) -> Path:
    path.write_bytes(b"x" * size)
    return path


class TestWebpSizeDssim:
    """Tests for the WebP encode/decode/score step."""

    def test_success_scores_against_source(
        self, config: CompareConfig, work_dir: Path, sample_images: list[Path]
    ) -> None:
        runner = ComparisonRunner(config)
        src = sample_images[0]
        webp = _write(work_dir / "image1.webp", 777)
        decoded = _write(work_dir / "image1-dwebp.png")

        with (
            patch.object(
                ImageEncoder, "encode_webp", return_value=EncodeResult(True, webp, 777)
            ) as enc,
            patch.object(
                ImageEncoder, "decode_webp", return_value=EncodeResult(True, decoded, 10)
            ),
            patch.object(QualityMeasurer, "measure_dssim", return_value=0.02) as measure,
        ):
            result = runner.webp_size_dssim(src, work_dir)

        assert result == (777, 0.02)
        assert enc.call_args.kwargs["quality"] is None
        measure.assert_called_once_with(src, decoded)
        # Intermediates removed after last use
        assert not webp.exists()
        assert not decoded.exists()

    def test_encode_failure(
        self, config: CompareConfig, work_dir: Path, sample_images: list[Path]
    ) -> None:
        runner = ComparisonRunner(config)
        with (
            patch.object(
                ImageEncoder,
                "encode_webp",
                return_value=EncodeResult(False, None, None, "cwebp not found on PATH"),
            ),
            patch.object(ImageEncoder, "decode_webp") as decode,
        ):
            assert runner.webp_size_dssim(sample_images[0], work_dir) is None
        decode.assert_not_called()

    def test_decode_failure(
        self, config: CompareConfig, work_dir: Path, sample_images: list[Path]
    ) -> None:
        runner = ComparisonRunner(config)
        webp = _write(work_dir / "image1.webp")
        with (
            patch.object(ImageEncoder, "encode_webp", return_value=EncodeResult(True, webp, 10)),
            patch.object(
                ImageEncoder, "decode_webp", return_value=EncodeResult(False, None, None, "bad")
            ),
            patch.object(QualityMeasurer, "measure_dssim") as measure,
        ):
            assert runner.webp_size_dssim(sample_images[0], work_dir) is None
        measure.assert_not_called()

    def test_score_failure(
        self, config: CompareConfig, work_dir: Path, sample_images: list[Path]
    ) -> None:
        runner = ComparisonRunner(config)
        webp = _write(work_dir / "image1.webp")
        decoded = _write(work_dir / "image1-dwebp.png")
        with (
            patch.object(ImageEncoder, "encode_webp", return_value=EncodeResult(True, webp, 10)),
            patch.object(ImageEncoder, "decode_webp", return_value=EncodeResult(True, decoded, 10)),
            patch.object(QualityMeasurer, "measure_dssim", return_value=None),
        ):
            assert runner.webp_size_dssim(sample_images[0], work_dir) is None

    def test_configured_webp_quality(
        self, work_dir: Path, sample_images: list[Path]
    ) -> None:
        runner = ComparisonRunner(CompareConfig(work_dir=work_dir, webp_quality=60))
        with patch.object(
            ImageEncoder, "encode_webp", return_value=EncodeResult(False, None, None, "x")
        ) as enc:
            runner.webp_size_dssim(sample_images[0], work_dir)
        assert enc.call_args.kwargs["quality"] == 60


class TestJpegSearch:
    """Tests for the flattened JPEG encode/decode/score step."""

    def test_scored_against_flattened_source(
        self, config: CompareConfig, work_dir: Path, rgba_image: Path
    ) -> None:
        runner = ComparisonRunner(config)
        references: list[Path] = []
        encoded_inputs: list[Path] = []

        def encode(input_path: Path, quality: int, **kwargs: object) -> EncodeResult:
            encoded_inputs.append(input_path)
            with Image.open(input_path) as img:
                assert img.mode == "RGB"
                assert img.getpixel((0, 0)) == (0, 0, 0)
            out = _write(work_dir / f"q{quality}.jpg", quality * 10)
            return EncodeResult(True, out, quality * 10)

        def decode(input_path: Path, **kwargs: object) -> EncodeResult:
            out = _write(work_dir / f"{input_path.stem}-djpeg.png")
            return EncodeResult(True, out, 10)

        def measure(reference: Path, candidate: Path) -> float:
            references.append(reference)
            return 0.01

        with (
            patch.object(ImageEncoder, "encode_jpeg", side_effect=encode),
            patch.object(ImageEncoder, "decode_jpeg", side_effect=decode),
            patch.object(QualityMeasurer, "measure_dssim", side_effect=measure),
        ):
            result = runner.search_jpeg(rgba_image, 0.01, work_dir)

        assert result.success
        assert result.quality == 90
        assert result.file_size == 900
        assert encoded_inputs[0].name == "gradient-flat.png"
        assert references == encoded_inputs
        # Flattened copy removed once the search ends
        assert not encoded_inputs[0].exists()

    def test_jpeg_step_passes_toolchain_choice(
        self, work_dir: Path, sample_images: list[Path]
    ) -> None:
        runner = ComparisonRunner(CompareConfig(work_dir=work_dir, use_libjpeg=False))
        with patch.object(
            ImageEncoder, "encode_jpeg", return_value=EncodeResult(False, None, None, "x")
        ) as enc:
            assert runner.jpeg_size_dssim(sample_images[0], 90, work_dir) is None
        assert enc.call_args.kwargs["use_libjpeg"] is False

    def test_decode_failure_fails_sample(
        self, config: CompareConfig, work_dir: Path, sample_images: list[Path]
    ) -> None:
        runner = ComparisonRunner(config)
        jpeg = _write(work_dir / "x.jpg")
        with (
            patch.object(ImageEncoder, "encode_jpeg", return_value=EncodeResult(True, jpeg, 10)),
            patch.object(
                ImageEncoder, "decode_jpeg", return_value=EncodeResult(False, None, None, "bad")
            ),
        ):
            assert runner.jpeg_size_dssim(sample_images[0], 90, work_dir) is None

    def test_unreadable_source_fails_search(self, config: CompareConfig, work_dir: Path) -> None:
        bogus = work_dir / "bogus.png"
        bogus.write_bytes(b"not a png")
        result = ComparisonRunner(config).search_jpeg(bogus, 0.01, work_dir)

        assert not result.success
        assert "flatten" in (result.error_message or "")
