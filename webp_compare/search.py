"""Quality search module.

Finds an encoder quality whose distortion score matches a target score by
bisecting an integer quality bracket. The search assumes the score does
not increase as quality goes up; that assumption is not checked, and an
encoder that breaks it can lead the search to a poor quality without any
error being raised.
"""

from collections.abc import Callable
from dataclasses import dataclass

DEFAULT_QUALITY_LOW = 80
DEFAULT_QUALITY_HIGH = 100
DEFAULT_TOLERANCE = 0.01


@dataclass
class QualitySample:
    """One evaluated quality level: encoded size and distortion score."""

    quality: int
    file_size: int
    score: float


@dataclass
class SearchResult:
    """Outcome of a quality search.

    On success ``quality``, ``file_size`` and ``score`` describe the last
    sample the search evaluated, which is not necessarily the closest one
    to the target.
    """

    success: bool
    quality: int | None = None
    file_size: int | None = None
    score: float | None = None
    iterations: int = 0
    converged: bool = False
    error_message: str | None = None


def bisect_quality(
    evaluate: Callable[[int], QualitySample | None],
    target_score: float,
    quality_low: int = DEFAULT_QUALITY_LOW,
    quality_high: int = DEFAULT_QUALITY_HIGH,
    tolerance: float = DEFAULT_TOLERANCE,
) -> SearchResult:
    """Bisect the quality bracket until the score is within tolerance.

    At each step the midpoint quality is evaluated. A score above the
    target means the quality is too low, so the lower bound moves up;
    otherwise the upper bound moves down. The loop ends when a score is
    within ``tolerance`` of the target or the bracket is one step wide.

    Args:
        evaluate: Encodes at a quality and scores the result, returning
            None if any step failed
        target_score: Distortion score to match
        quality_low: Lower end of the bracket
        quality_high: Upper end of the bracket
        tolerance: Absolute score difference accepted as a match

    Returns:
        SearchResult holding the last evaluated sample, or a failure if any
        evaluation failed or the bracket was too narrow to evaluate
    """
    if quality_high - quality_low <= 1:
        return SearchResult(
            success=False,
            error_message=f"Quality bracket [{quality_low}, {quality_high}] is too narrow",
        )

    low, high = quality_low, quality_high
    sample: QualitySample | None = None
    iterations = 0
    converged = False

    while high - low > 1:
        quality = (low + high) // 2
        sample = evaluate(quality)
        iterations += 1
        if sample is None:
            return SearchResult(
                success=False,
                iterations=iterations,
                error_message=f"Evaluation failed at quality {quality}",
            )

        delta = sample.score - target_score
        if abs(delta) < tolerance:
            converged = True
            break

        if delta > 0:
            low = quality
        else:
            high = quality

    assert sample is not None
    return SearchResult(
        success=True,
        quality=sample.quality,
        file_size=sample.file_size,
        score=sample.score,
        iterations=iterations,
        converged=converged,
    )
