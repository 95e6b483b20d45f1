from __future__ import annotations

import logging

import numpy as np
import sentry_sdk

from snapdiff.errors import ShapeError

from .buffer import PixelBuffer
from .compare import comparison_space, pixel_deltas
from .types import PixelFormat, ToleranceConfig

logger = logging.getLogger(__name__)

HIGHLIGHT_COLOR = (255, 0, 255, 255)
CONTEXT_DIM_FACTOR = 3

# ITU-R BT.601 luma weights, scaled by 1000.
_LUMA_WEIGHTS = np.array([299, 587, 114], dtype=np.uint32)


def _dimmed_grayscale(rgba: np.ndarray) -> np.ndarray:
    luma = (rgba[..., :3].astype(np.uint32) @ _LUMA_WEIGHTS + 500) // 1000
    dimmed = (luma // CONTEXT_DIM_FACTOR).astype(np.uint8)
    out = np.empty_like(rgba)
    out[..., 0] = dimmed
    out[..., 1] = dimmed
    out[..., 2] = dimmed
    out[..., 3] = rgba[..., 3]
    return out


def bounding_box(mask: np.ndarray) -> tuple[int, int, int, int] | None:
    """Return ``(min_x, min_y, max_x, max_y)`` of the set pixels in ``mask``, inclusive."""
    ys, xs = np.nonzero(mask)
    if len(xs) == 0:
        return None
    return int(xs.min()), int(ys.min()), int(xs.max()), int(ys.max())


def _check_comparable(candidate: PixelBuffer, reference: PixelBuffer) -> None:
    if candidate.size != reference.size:
        raise ShapeError(f"cannot diff {candidate.size} against {reference.size}")
    if candidate.scale != reference.scale:
        raise ShapeError(f"cannot diff scale {candidate.scale} against {reference.scale}")


def diff_mask(
    candidate: PixelBuffer,
    reference: PixelBuffer,
    tolerance: ToleranceConfig | None = None,
) -> np.ndarray:
    """Boolean ``(height, width)`` array, True where a pixel exceeds tolerance."""
    _check_comparable(candidate, reference)
    tolerance = tolerance or ToleranceConfig.exact()
    space = comparison_space(candidate, reference)
    deltas = pixel_deltas(candidate.to_rgba(space), reference.to_rgba(space))
    return deltas > tolerance.per_pixel_color_tolerance


@sentry_sdk.tracing.trace
def render_diff_with_mask(
    candidate: PixelBuffer,
    reference: PixelBuffer,
    tolerance: ToleranceConfig | None = None,
) -> tuple[PixelBuffer, np.ndarray]:
    """Like :func:`render_diff`, also returning the mismatch mask it painted."""
    _check_comparable(candidate, reference)
    tolerance = tolerance or ToleranceConfig.exact()
    space = comparison_space(candidate, reference)
    reference_rgba = reference.to_rgba(space)
    mask = pixel_deltas(candidate.to_rgba(space), reference_rgba) > tolerance.per_pixel_color_tolerance

    out = _dimmed_grayscale(reference_rgba)
    out[mask] = HIGHLIGHT_COLOR

    logger.debug(
        "render_diff: highlighted %d of %d pixels",
        int(np.count_nonzero(mask)),
        candidate.pixel_count,
        extra={"bounding_box": bounding_box(mask), "size": candidate.size},
    )

    diff = PixelBuffer.from_array(
        out,
        PixelFormat.RGBA8,
        scale=reference.scale,
        color_space=space,
    )
    return diff, mask


def render_diff(
    candidate: PixelBuffer,
    reference: PixelBuffer,
    tolerance: ToleranceConfig | None = None,
) -> PixelBuffer:
    """Visualise where ``candidate`` departs from ``reference``.

    Pixels within tolerance show the reference as dimmed grayscale context;
    pixels beyond it are painted ``HIGHLIGHT_COLOR`` at full opacity. The
    result is always ``RGBA8`` with the inputs' dimensions and scale.
    """
    diff, _ = render_diff_with_mask(candidate, reference, tolerance)
    return diff
