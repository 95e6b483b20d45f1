from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import NamedTuple

import numpy as np
import sentry_sdk

from .buffer import PixelBuffer
from .decode import common_color_space
from .types import ColorSpace, ComparisonResult, ReasonCode, ToleranceConfig

logger = logging.getLogger(__name__)

DEFAULT_ROWS_PER_BAND = 256


class _BandStats(NamedTuple):
    mismatched: int
    max_delta: int


def pixel_deltas(candidate_rgba: np.ndarray, reference_rgba: np.ndarray) -> np.ndarray:
    """Largest absolute per-channel difference (alpha included) for each pixel."""
    diff = np.abs(candidate_rgba.astype(np.int16) - reference_rgba.astype(np.int16))
    return diff.max(axis=-1)


def comparison_space(candidate: PixelBuffer, reference: PixelBuffer) -> ColorSpace:
    return common_color_space(candidate.color_space, reference.color_space)


def _row_bands(height: int, rows_per_band: int) -> list[tuple[int, int]]:
    return [(start, min(start + rows_per_band, height)) for start in range(0, height, rows_per_band)]


def _scan_band(
    candidate: PixelBuffer,
    reference: PixelBuffer,
    space: ColorSpace,
    threshold: int,
    band: tuple[int, int],
) -> _BandStats:
    start, stop = band
    deltas = pixel_deltas(candidate.rows(start, stop, space), reference.rows(start, stop, space))
    return _BandStats(
        mismatched=int(np.count_nonzero(deltas > threshold)),
        max_delta=int(deltas.max(initial=0)),
    )


def _scan(
    candidate: PixelBuffer,
    reference: PixelBuffer,
    threshold: int,
    rows_per_band: int,
    executor: Executor | None,
) -> _BandStats:
    space = comparison_space(candidate, reference)
    bands = _row_bands(candidate.height, rows_per_band)

    def scan(band: tuple[int, int]) -> _BandStats:
        return _scan_band(candidate, reference, space, threshold, band)

    if executor is None:
        stats = [scan(band) for band in bands]
    else:
        stats = list(executor.map(scan, bands))

    return _BandStats(
        mismatched=sum(s.mismatched for s in stats),
        max_delta=max((s.max_delta for s in stats), default=0),
    )


@sentry_sdk.tracing.trace
def compare(
    candidate: PixelBuffer,
    reference: PixelBuffer,
    tolerance: ToleranceConfig | None = None,
    *,
    rows_per_band: int = DEFAULT_ROWS_PER_BAND,
    workers: int = 1,
) -> ComparisonResult:
    tolerance = tolerance or ToleranceConfig.exact()
    if rows_per_band <= 0:
        raise ValueError(f"rows_per_band must be positive, got {rows_per_band}")

    if candidate.size != reference.size:
        logger.debug(
            "compare: sizes differ",
            extra={"candidate_size": candidate.size, "reference_size": reference.size},
        )
        return ComparisonResult(
            is_equal=False,
            total_pixel_count=reference.pixel_count,
            reason_code=ReasonCode.SIZES_DIFFER,
        )

    if candidate.scale != reference.scale:
        logger.debug(
            "compare: scales differ",
            extra={"candidate_scale": candidate.scale, "reference_scale": reference.scale},
        )
        return ComparisonResult(
            is_equal=False,
            total_pixel_count=reference.pixel_count,
            reason_code=ReasonCode.SCALES_DIFFER,
        )

    threshold = tolerance.per_pixel_color_tolerance
    if workers > 1 and candidate.height > rows_per_band:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            stats = _scan(candidate, reference, threshold, rows_per_band, executor)
    else:
        stats = _scan(candidate, reference, threshold, rows_per_band, None)

    total = candidate.pixel_count
    ratio = stats.mismatched / total
    is_equal = ratio <= tolerance.max_mismatch_ratio

    logger.debug(
        "compare: scanned %d pixels, %d mismatched",
        total,
        stats.mismatched,
        extra={
            "mismatch_ratio": ratio,
            "max_channel_delta": stats.max_delta,
            "per_pixel_color_tolerance": threshold,
            "max_mismatch_ratio": tolerance.max_mismatch_ratio,
        },
    )

    return ComparisonResult(
        is_equal=is_equal,
        pixel_mismatch_count=stats.mismatched,
        total_pixel_count=total,
        mismatch_ratio=ratio,
        reason_code=ReasonCode.NONE if is_equal else ReasonCode.CONTENT_MISMATCH,
        max_channel_delta=stats.max_delta,
    )


def compare_batch(
    pairs: Sequence[tuple[PixelBuffer, PixelBuffer]],
    tolerance: ToleranceConfig | None = None,
    *,
    workers: int = 1,
) -> list[ComparisonResult]:
    if workers <= 1 or len(pairs) <= 1:
        return [compare(candidate, reference, tolerance) for candidate, reference in pairs]
    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(
            executor.map(lambda pair: compare(pair[0], pair[1], tolerance), pairs)
        )
